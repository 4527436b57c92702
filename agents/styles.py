"""
Response styling strategies applied by AgentEngine after generation.

An engine receives one strategy at construction time. Strategies only
rewrite the final text; they never see the prompt or the backend.
"""
import re
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple


class ResponseStyle(Protocol):
    def apply(self, response: str, user_input: str, context: Mapping[str, Any]) -> str:
        ...


class PlainStyle:
    """Returns the response untouched."""

    def apply(self, response, user_input, context):
        return response


class VocabularyStyle:
    """Whole-word, case-insensitive vocabulary substitution."""

    def __init__(self, substitutions: Mapping[str, str], prefix: str = '', min_length: int = 0):
        self.substitutions: Tuple[Tuple[re.Pattern, str], ...] = tuple(
            (re.compile(rf'\b{re.escape(word)}\b', re.IGNORECASE), replacement)
            for word, replacement in substitutions.items()
        )
        self.prefix = prefix
        self.min_length = min_length

    def apply(self, response, user_input, context):
        if len(response) <= self.min_length:
            return response

        for pattern, replacement in self.substitutions:
            response = pattern.sub(replacement, response)

        if self.prefix and not response.startswith(self.prefix):
            response = f"{self.prefix}{response}"
        return response


# CineGen: short replies stay as-is, longer ones get the director's voice
CINEMATIC_STYLE = VocabularyStyle(
    {'video': 'cinematic piece', 'make': 'craft', 'create': 'envision'},
    prefix='🎬 ',
    min_length=50,
)

STYLES: Dict[str, ResponseStyle] = {
    'plain': PlainStyle(),
    'cinematic': CINEMATIC_STYLE,
}


def get_style(name: Optional[str]) -> ResponseStyle:
    return STYLES.get((name or 'plain').lower(), STYLES['plain'])
