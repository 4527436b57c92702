"""
Model selection for agent requests.

Pure functions: no I/O, no randomness. The returned key still has to be
resolved against the registry, which raises ConfigurationError if the
catalogue does not carry it.
"""
from typing import Any, Mapping, Optional

LONG_PROMPT_THRESHOLD = 4000

DEFAULT_MODEL = 'llama32'

TASK_ROUTES = {
    ('analysis', 'reasoning', 'research'): 'deepseek',
    ('creative', 'writing', 'story'): 'gpt_oss',
    ('chat', 'quick', 'simple'): 'llama32',
    ('specialized', 'domain_specific'): 'gemma3',
}

CODE_TASKS = ('code', 'programming', 'technical')
CODE_MODEL = 'deepseek'
LONG_CODE_MODEL = 'phi4'

AGENT_DEFAULTS = {
    ('cinegen', 'video', 'creative'): 'gpt_oss',
    ('codemaster', 'technical', 'programming'): 'phi4',
    ('datasphere', 'analysis', 'research'): 'deepseek',
    ('chat', 'conversation', 'simple'): 'llama32',
}


def select_model(task_type: Optional[str], prompt_length: int) -> str:
    task = str(task_type or '').strip().lower()

    if task in CODE_TASKS:
        # Long code prompts need the larger context window
        return LONG_CODE_MODEL if prompt_length > LONG_PROMPT_THRESHOLD else CODE_MODEL

    for aliases, model_key in TASK_ROUTES.items():
        if task in aliases:
            return model_key

    return DEFAULT_MODEL


def default_model_for_agent(agent_type: Optional[str]) -> str:
    agent_type = str(agent_type or '').strip().lower()
    for aliases, model_key in AGENT_DEFAULTS.items():
        if agent_type in aliases:
            return model_key
    return DEFAULT_MODEL


def smart_generate(client, prompt: str, task_type: str = 'general', options: Optional[Mapping[str, Any]] = None):
    """Pick a backend for ``task_type`` and generate with it."""
    model_key = select_model(task_type, len(prompt))
    return client.generate(model_key, prompt, options)
