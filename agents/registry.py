"""
Model Registry for the OneLastAI agent platform.

A read-only catalogue of the text-generation backends served by the shared
inference endpoint. Built once at startup from models.yml and passed by
reference into the inference client and the agent engines.
"""
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterator, List, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY_PATH = Path(__file__).resolve().parent / 'config' / 'models.yml'


class ModelDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    key: str
    model_name: str
    description: str = ''
    strengths: FrozenSet[str] = Field(default_factory=frozenset)
    max_context: int = 8192
    timeout: int = 30


class ModelRegistry:
    """Immutable mapping of logical model keys to descriptors."""

    def __init__(self, models: Mapping[str, ModelDescriptor], base_url: str):
        if not models:
            raise ConfigurationError("Model registry must declare at least one model")
        self._models = MappingProxyType(dict(models))
        self._base_url = base_url.rstrip('/')

    @property
    def base_url(self) -> str:
        return self._base_url

    def get(self, key: str) -> ModelDescriptor:
        try:
            return self._models[str(key)]
        except KeyError:
            raise ConfigurationError(f"Unknown model: {key}") from None

    def keys(self) -> List[str]:
        return list(self._models.keys())

    def items(self):
        return self._models.items()

    def __contains__(self, key) -> bool:
        return str(key) in self._models

    def __iter__(self) -> Iterator[str]:
        return iter(self._models)

    def __len__(self) -> int:
        return len(self._models)

    def __repr__(self):
        return f"ModelRegistry(base_url={self._base_url!r}, models={self.keys()!r})"


def build_model_registry(raw: Dict, base_url: Optional[str] = None) -> ModelRegistry:
    """Validate a parsed models.yml document into a registry."""
    models_raw = (raw or {}).get('models') or {}
    models = {}
    for key, entry in models_raw.items():
        try:
            models[key] = ModelDescriptor(key=key, **(entry or {}))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid model entry '{key}': {e}") from e

    resolved_url = base_url or (raw or {}).get('base_url')
    if not resolved_url:
        raise ConfigurationError("No inference base_url configured")
    return ModelRegistry(models, resolved_url)


def load_model_registry(path=None, base_url: Optional[str] = None) -> ModelRegistry:
    """
    Load the registry from YAML.

    ``base_url`` overrides the file's value so deployments can point every
    model at a different inference gateway without editing the catalogue.
    """
    config_path = Path(path) if path else DEFAULT_REGISTRY_PATH
    if not config_path.exists():
        logger.error(f"Model registry not found at {config_path}")
        raise ConfigurationError(f"Missing model registry at {config_path}")

    with open(config_path, 'r') as f:
        raw = yaml.safe_load(f) or {}

    registry = build_model_registry(raw, base_url=base_url)
    logger.info(f"Model registry loaded: {len(registry)} models from {config_path}")
    return registry
