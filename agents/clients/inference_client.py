import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import requests
from django.utils import timezone
from pydantic import BaseModel, Field, ValidationError

from ..exceptions import UpstreamError
from ..registry import ModelDescriptor, ModelRegistry

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 10
PROBE_TIMEOUT = 5

GENERATE_PATH = "/api/generate"
VERSION_PATH = "/api/version"
TAGS_PATH = "/api/tags"


class GenerationOptions(BaseModel):
    temperature: float = 0.7
    top_p: float = 0.9
    max_tokens: int = 2048
    stop: List[str] = Field(default_factory=list)

    @classmethod
    def from_mapping(cls, options: Optional[Mapping[str, Any]]) -> "GenerationOptions":
        options = dict(options or {})
        if 'stop' not in options and 'stop_sequences' in options:
            options['stop'] = options['stop_sequences']
        known = {k: v for k, v in options.items() if k in cls.model_fields and v is not None}
        return cls(**known)


class GenerateResponse(BaseModel):
    response: Optional[str] = None
    content: Optional[str] = None

    @property
    def text(self) -> Optional[str]:
        if self.response is not None:
            return self.response
        return self.content


class LoadedModel(BaseModel):
    name: str


class TagsResponse(BaseModel):
    models: List[LoadedModel] = Field(default_factory=list)


@dataclass
class GenerationRequest:
    model_key: str
    prompt: str
    options: GenerationOptions = field(default_factory=GenerationOptions)

    def to_payload(self, descriptor: ModelDescriptor) -> Dict[str, Any]:
        return {
            "model": descriptor.model_name,
            "prompt": self.prompt,
            "stream": False,
            "options": self.options.model_dump(),
        }


@dataclass
class GenerationResult:
    success: bool
    model: str
    text: str = ""
    processing_time_ms: int = 0
    tokens_used: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "response": self.text,
            "model": self.model,
            "processing_time_ms": self.processing_time_ms,
            "tokens_used": self.tokens_used,
            "error": self.error,
        }

    @classmethod
    def failure(cls, model: str, error: str) -> "GenerationResult":
        return cls(success=False, model=model, error=error)


def estimate_tokens(text: str) -> int:
    # Rough estimation: 1 token ~ 4 characters
    return math.ceil(len(text) / 4)


class InferenceClient:
    """
    HTTP client for the shared inference endpoint.

    ``generate`` never raises for transport or backend problems; they come
    back as a failed GenerationResult. An unknown model key is a
    configuration error and is raised to the caller.
    """

    def __init__(
        self,
        registry: ModelRegistry,
        connect_timeout: int = CONNECT_TIMEOUT,
        session=None,
        logger: Optional[logging.Logger] = None
    ):
        self.registry = registry
        self.connect_timeout = connect_timeout
        self.http = session or requests
        self.logger = logger or logging.getLogger(__name__)

    @property
    def base_url(self) -> str:
        return self.registry.base_url

    def available_models(self) -> List[str]:
        return self.registry.keys()

    def model_info(self, model_key: str) -> Optional[ModelDescriptor]:
        if model_key not in self.registry:
            return None
        return self.registry.get(model_key)

    def generate(
        self,
        model_key: str,
        prompt: str,
        options: Optional[Mapping[str, Any]] = None
    ) -> GenerationResult:
        descriptor = self.registry.get(model_key)
        try:
            request = GenerationRequest(
                model_key=model_key,
                prompt=prompt,
                options=GenerationOptions.from_mapping(options),
            )
        except (ValidationError, TypeError, ValueError) as e:
            self.logger.error(f"Invalid generation options for {model_key}: {e}")
            return GenerationResult.failure(model_key, f"Invalid generation options: {e}")

        start = time.monotonic()
        try:
            text = self._post_generate(descriptor, request)
        except UpstreamError as e:
            self.logger.error(f"AI Model Error ({model_key}): {e}")
            return GenerationResult.failure(model_key, str(e))
        except requests.exceptions.RequestException as e:
            self.logger.error(f"AI Model Error ({model_key}): {e}")
            return GenerationResult.failure(model_key, str(e))
        except Exception as e:
            self.logger.error(f"Unexpected AI Model Error ({model_key}): {e}")
            return GenerationResult.failure(model_key, str(e))

        elapsed_ms = int((time.monotonic() - start) * 1000)
        return GenerationResult(
            success=True,
            model=model_key,
            text=text,
            processing_time_ms=elapsed_ms,
            tokens_used=estimate_tokens(prompt + text),
        )

    def _post_generate(self, descriptor: ModelDescriptor, request: GenerationRequest) -> str:
        response = self.http.post(
            f"{self.base_url}{GENERATE_PATH}",
            json=request.to_payload(descriptor),
            headers={"Content-Type": "application/json"},
            timeout=(self.connect_timeout, descriptor.timeout)
        )

        if response.status_code != 200:
            raise UpstreamError(f"HTTP {response.status_code}: {response.text}")

        try:
            body = GenerateResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise UpstreamError(f"Malformed response from {descriptor.model_name}: {e}") from e

        if body.text is None:
            raise UpstreamError(f"Response from {descriptor.model_name} has no text field")
        return body.text

    # === Health checks ===

    def model_status(self, model_key: Optional[str] = None) -> Dict[str, Any]:
        if model_key:
            return self.check_single_model(model_key)
        return self.check_all_models()

    def check_single_model(self, model_key: str) -> Dict[str, Any]:
        if model_key not in self.registry:
            return {"status": "unknown", "model": model_key, "error": "Model not found"}

        descriptor = self.registry.get(model_key)
        try:
            version = self.http.get(f"{self.base_url}{VERSION_PATH}", timeout=PROBE_TIMEOUT)
            tags = self.http.get(f"{self.base_url}{TAGS_PATH}", timeout=PROBE_TIMEOUT)

            loaded = False
            if version.status_code == 200 and tags.status_code == 200:
                loaded_names = {m.name for m in TagsResponse.model_validate(tags.json()).models}
                loaded = descriptor.model_name in loaded_names

            return {
                "status": "online" if loaded else "offline",
                "model": model_key,
                "model_name": descriptor.model_name,
                "endpoint": self.base_url,
                "loaded": loaded,
                "last_checked": timezone.now().isoformat(),
            }
        except Exception as e:
            return {
                "status": "offline",
                "model": model_key,
                "model_name": descriptor.model_name,
                "endpoint": self.base_url,
                "error": str(e),
                "last_checked": timezone.now().isoformat(),
            }

    def check_all_models(self) -> Dict[str, Any]:
        results = {key: self.check_single_model(key) for key in self.registry}
        return {
            "gateway_status": self.gateway_status(),
            "models": results,
            "checked_at": timezone.now().isoformat(),
        }

    def gateway_status(self) -> str:
        try:
            response = self.http.get(f"{self.base_url}{VERSION_PATH}", timeout=PROBE_TIMEOUT)
            return "online" if response.status_code == 200 else "offline"
        except requests.exceptions.RequestException:
            return "offline"


def get_inference_client() -> InferenceClient:
    """Client bound to the registry built at startup by the agents app."""
    from django.apps import apps
    from django.conf import settings

    registry = apps.get_app_config('agents').registry
    return InferenceClient(
        registry,
        connect_timeout=getattr(settings, 'INFERENCE_CONNECT_TIMEOUT', CONNECT_TIMEOUT)
    )
