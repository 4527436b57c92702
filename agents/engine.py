"""
Agent Engine - per-agent façade over the inference client.

Builds persona-conditioned prompts, calls the configured backend, cleans
and styles the reply, keeps a bounded in-process conversation log and
persists a compact copy of every exchange to the memory store.
"""
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional

from django.utils import timezone

from .clients.inference_client import InferenceClient, GenerationResult
from .exceptions import ConfigurationError
from .memory import ConversationLog, ConversationTurn, calculate_importance_score
from .registry import ModelRegistry
from .runtime import AgentSettings, build_runtime_config
from .stores import DjangoMemoryStore, MemoryStore
from .styles import ResponseStyle, get_style

logger = logging.getLogger(__name__)

HISTORY_TURNS = 3
CHUNK_SIZE = 50
STREAM_DELAY = 0.1
MEMORY_TTL = timedelta(hours=24)


@dataclass
class AgentReply:
    """Uniform envelope returned to controllers."""
    success: bool
    response: str
    agent_id: str
    agent_name: str
    model_used: str
    processing_time_ms: int = 0
    tokens_used: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    fallback_agent: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'success': self.success,
            'response': self.response,
            'agent_id': self.agent_id,
            'agent_name': self.agent_name,
            'model_used': self.model_used,
            'processing_time_ms': self.processing_time_ms,
            'tokens_used': self.tokens_used,
            'metadata': self.metadata,
            'fallback': self.fallback_agent,
        }
        if not self.success:
            data['error'] = self.error
        return data


def extract_user_input(input_data) -> str:
    if isinstance(input_data, str):
        return input_data
    if isinstance(input_data, Mapping):
        for key in ('message', 'prompt', 'text'):
            if input_data.get(key) is not None:
                return str(input_data[key])
    return str(input_data)


class AgentEngine:
    def __init__(
        self,
        agent,
        client: InferenceClient,
        agent_settings: Optional[AgentSettings] = None,
        model_key: Optional[str] = None,
        style: Optional[ResponseStyle] = None,
        memory_store: Optional[MemoryStore] = None,
        stream_delay: float = STREAM_DELAY,
        sleep: Callable[[float], None] = time.sleep,
        logger: Optional[logging.Logger] = None
    ):
        self.agent = agent
        self.client = client
        self.config = build_runtime_config(agent, client.registry, agent_settings, model_key=model_key)
        self.style = style or get_style(self.config.style)
        self.memory_store = memory_store or DjangoMemoryStore()
        self.memory = ConversationLog()
        self.stream_delay = stream_delay
        self.sleep = sleep
        self.logger = logger or logging.getLogger(__name__)

    @property
    def model_key(self) -> str:
        return self.config.model_key

    @property
    def personality(self) -> str:
        return self.config.personality

    @property
    def capabilities(self):
        return self.config.capabilities

    @property
    def registry(self) -> ModelRegistry:
        return self.client.registry

    # === Main interaction ===

    def process_request(self, input_data, context: Optional[Mapping[str, Any]] = None) -> AgentReply:
        context = dict(context or {})
        user_input = extract_user_input(input_data)

        try:
            prompt = self.build_prompt(user_input, context)
            result = self.client.generate(self.model_key, prompt, self.config.generation_options())

            if not result.success:
                self.logger.error(f"Agent Engine Error ({self.agent.name}): {result.error}")
                return self._failure_reply(result.error)

            response_text = self.process_response(result, user_input, context)
            self.store_conversation_memory(user_input, response_text, context)

            return AgentReply(
                success=True,
                response=response_text,
                agent_id=str(self.agent.id),
                agent_name=self.agent.name,
                model_used=self.model_key,
                processing_time_ms=result.processing_time_ms,
                tokens_used=result.tokens_used,
                metadata={
                    'capabilities_used': self.detect_capabilities_used(user_input),
                    'personality_applied': True,
                    'context_length': len(prompt),
                    'timestamp': timezone.now().isoformat(),
                },
                fallback_agent=bool(getattr(self.agent, 'fallback', False)),
            )
        except ConfigurationError:
            raise
        except Exception as e:
            self.logger.error(f"Agent Engine Error ({self.agent.name}): {e}")
            return self._failure_reply(str(e))

    def stream_response(
        self,
        input_data,
        context: Optional[Mapping[str, Any]] = None,
        on_chunk: Optional[Callable[[Dict[str, Any]], None]] = None
    ) -> AgentReply:
        """
        Simulated streaming: the full reply is generated first, then handed
        to ``on_chunk`` in CHUNK_SIZE pieces. The backend is never streamed.
        """
        reply = self.process_request(input_data, context)
        if on_chunk is None:
            return reply

        if not reply.success:
            on_chunk({
                'error': reply.error,
                'finished': True,
                'agent_name': self.agent.name,
            })
            return reply

        text = reply.response
        chunks = [text[i:i + CHUNK_SIZE] for i in range(0, len(text), CHUNK_SIZE)] or ['']
        last = len(chunks) - 1
        for index, chunk in enumerate(chunks):
            on_chunk({
                'chunk': chunk,
                'index': index,
                'finished': index == last,
                'agent_name': self.agent.name,
            })
            if index != last and self.stream_delay:
                self.sleep(self.stream_delay)
        return reply

    # === Prompting ===

    def build_prompt(self, user_input: str, context: Mapping[str, Any]) -> str:
        prompt = self.personality

        history = context.get('conversation_history') or []
        if history:
            prompt += "Previous conversation:\n"
            for message in list(history)[-HISTORY_TURNS:]:
                prompt += f"{message.get('role')}: {message.get('content')}\n"
            prompt += "\n"

        if context.get('additional_context'):
            prompt += f"Additional context: {context['additional_context']}\n\n"

        prompt += f"User: {user_input}\n"
        prompt += f"{self.agent.name}:"
        return prompt

    def process_response(self, result: GenerationResult, user_input: str, context: Mapping[str, Any]) -> str:
        response_text = result.text.strip()
        # Backends sometimes echo the completion cue back
        response_text = re.sub(rf'^{re.escape(self.agent.name)}:\s*', '', response_text)
        return self.style.apply(response_text, user_input, context)

    def detect_capabilities_used(self, user_input: str) -> List[str]:
        input_text = user_input.lower()
        used = []
        for capability in self.capabilities:
            keywords = [k for k in str(capability).lower().split('_') if k]
            if any(keyword in input_text for keyword in keywords):
                used.append(capability)
        return used

    # === Memory ===

    def store_conversation_memory(self, user_input: str, response: str, context: Mapping[str, Any]):
        self.memory.append(ConversationTurn(
            user_input=user_input,
            agent_response=response,
            context=dict(context),
        ))

        now = timezone.now()
        try:
            self.memory_store.store_memory(
                self.agent,
                'conversation',
                f"session_{context.get('session_id') or 'default'}",
                {
                    'user_input': user_input,
                    'agent_response': response,
                    'interaction_time': now.isoformat(),
                },
                expires_at=now + MEMORY_TTL,
                importance_score=calculate_importance_score(user_input, response),
            )
        except Exception as e:
            self.logger.warning(f"Failed to persist memory for {self.agent.name}: {e}")

    def conversation_history(self) -> List[ConversationTurn]:
        return self.memory.turns()

    def clear_memory(self):
        self.memory.clear()

    # === Fallbacks ===

    def fallback_response(self) -> str:
        message = (
            "I apologize, but I'm experiencing some technical difficulties right now. "
            "Please try again in a moment, or rephrase your request."
        )
        if self.capabilities:
            message += (
                f" As {self.agent.name}, I'm here to help with "
                f"{', '.join(self.capabilities)} when I'm back online."
            )
        return message

    def _failure_reply(self, error: Optional[str]) -> AgentReply:
        return AgentReply(
            success=False,
            response=self.fallback_response(),
            agent_id=str(self.agent.id),
            agent_name=self.agent.name,
            model_used=self.model_key,
            metadata={'timestamp': timezone.now().isoformat()},
            error=error,
            fallback_agent=bool(getattr(self.agent, 'fallback', False)),
        )


def build_engine(agent, **kwargs) -> AgentEngine:
    """Engine wired to the registry and agent settings loaded at startup."""
    from django.apps import apps
    from django.conf import settings

    from .clients.inference_client import get_inference_client

    app_config = apps.get_app_config('agents')
    kwargs.setdefault('stream_delay', getattr(settings, 'AGENT_STREAM_DELAY', STREAM_DELAY))
    return AgentEngine(
        agent,
        client=kwargs.pop('client', None) or get_inference_client(),
        agent_settings=kwargs.pop('agent_settings', None) or app_config.agent_settings,
        **kwargs
    )
