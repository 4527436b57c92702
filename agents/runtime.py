"""
Per-agent runtime configuration.

agents.yml carries global generation defaults plus per-agent-type
overrides. AgentEngine merges the two once, at construction, and keeps the
result (including the personality preamble) for its whole lifetime.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError

from .exceptions import ConfigurationError
from .registry import ModelRegistry
from .routing import default_model_for_agent

logger = logging.getLogger(__name__)

DEFAULT_AGENT_CONFIG_PATH = Path(__file__).resolve().parent / 'config' / 'agents.yml'

GENERATION_DEFAULTS = {
    'temperature': 0.7,
    'max_tokens': 2048,
    'top_p': 0.9,
}


class AgentOverrides(BaseModel):
    model_config = ConfigDict(extra='ignore', protected_namespaces=())

    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    system_prompt: Optional[str] = None
    style: Optional[str] = None

    def generation_overrides(self) -> Dict[str, Any]:
        values = {
            'temperature': self.temperature,
            'max_tokens': self.max_tokens,
            'top_p': self.top_p,
        }
        return {k: v for k, v in values.items() if v is not None}


class AgentSettings:
    """Parsed agents.yml: ``default`` plus ``agents`` keyed by agent type."""

    def __init__(self, default: Optional[Mapping] = None, agents: Optional[Mapping] = None):
        self.default = dict(default or {})
        self.agents = {str(k).lower(): dict(v or {}) for k, v in (agents or {}).items()}

    def for_type(self, agent_type: Optional[str]) -> AgentOverrides:
        merged = {**self.default, **self.agents.get(str(agent_type or '').lower(), {})}
        try:
            return AgentOverrides(**merged)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid agent config for '{agent_type}': {e}") from e


def load_agent_settings(path=None) -> AgentSettings:
    config_path = Path(path) if path else DEFAULT_AGENT_CONFIG_PATH
    if not config_path.exists():
        logger.warning(f"Agent config not found at {config_path} - using built-in defaults")
        return AgentSettings()

    with open(config_path, 'r') as f:
        raw = yaml.safe_load(f) or {}
    return AgentSettings(raw.get('default'), raw.get('agents'))


@dataclass(frozen=True)
class AgentRuntimeConfig:
    model_key: str
    personality: str
    capabilities: Tuple[str, ...] = ()
    generation_overrides: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    system_prompt: Optional[str] = None
    style: Optional[str] = None

    def generation_options(self) -> Dict[str, Any]:
        return {**GENERATION_DEFAULTS, **self.generation_overrides}


def _traits(agent) -> Dict[str, Any]:
    traits = getattr(agent, 'personality_traits', None) or {}
    # Seeded agents carry a bare list of traits
    if isinstance(traits, (list, tuple)):
        return {'primary_traits': list(traits)}
    return traits if isinstance(traits, dict) else {}


def _tagline(agent) -> str:
    configuration = getattr(agent, 'configuration', None) or {}
    return (
        getattr(agent, 'tagline', '')
        or configuration.get('tagline')
        or 'an AI assistant'
    )


def build_personality_prompt(agent, capabilities, system_prompt: Optional[str] = None) -> str:
    traits = _traits(agent)

    prompt = ''
    if system_prompt and system_prompt.strip():
        prompt += system_prompt.strip() + "\n\n"
    prompt += f"You are {agent.name}, {_tagline(agent)}.\n"

    if traits.get('primary_traits'):
        prompt += f"Your primary personality traits: {', '.join(traits['primary_traits'])}.\n"
    if traits.get('communication_style'):
        prompt += f"Communication style: {traits['communication_style']}.\n"
    if traits.get('expertise_level'):
        prompt += f"Expertise level: {traits['expertise_level']}.\n"

    if capabilities:
        prompt += f"Your capabilities include: {', '.join(capabilities)}.\n"

    prompt += (
        "Always respond in character and use your specialized knowledge "
        "to provide helpful, accurate responses.\n\n"
    )
    return prompt


def build_runtime_config(
    agent,
    registry: ModelRegistry,
    settings: Optional[AgentSettings] = None,
    model_key: Optional[str] = None
) -> AgentRuntimeConfig:
    """
    Resolve model, overrides and preamble for ``agent``.

    Model precedence: explicit ``model_key``, then agents.yml, then the
    fixed per-agent default. The key is checked against the registry here
    so a bad catalogue fails at engine construction, not mid-request.
    """
    overrides = (settings or AgentSettings()).for_type(agent.agent_type)
    resolved = model_key or overrides.model or default_model_for_agent(agent.agent_type)
    registry.get(resolved)

    capabilities = tuple(getattr(agent, 'capabilities', None) or ())
    return AgentRuntimeConfig(
        model_key=resolved,
        personality=build_personality_prompt(agent, capabilities, overrides.system_prompt),
        capabilities=capabilities,
        generation_overrides=MappingProxyType(overrides.generation_overrides()),
        system_prompt=overrides.system_prompt,
        style=overrides.style,
    )
