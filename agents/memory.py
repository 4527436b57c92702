"""
In-process conversation memory for agent engines.
"""
import itertools
import re
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List

from django.utils import timezone

MEMORY_CAPACITY = 10

URGENCY_PATTERN = re.compile(r'\b(important|urgent|help|problem)\b', re.IGNORECASE)
MAX_IMPORTANCE = 10.0


@dataclass
class ConversationTurn:
    user_input: str
    agent_response: str
    context: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=timezone.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'user_input': self.user_input,
            'agent_response': self.agent_response,
            'context': self.context,
            'timestamp': self.timestamp.isoformat(),
        }


class ConversationLog:
    """
    Bounded FIFO of conversation turns.

    Turns are keyed by a monotonic sequence number so two calls inside the
    same second never overwrite each other. Safe to share between threads.
    """

    def __init__(self, capacity: int = MEMORY_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._turns: "OrderedDict[int, ConversationTurn]" = OrderedDict()
        self._sequence = itertools.count()
        self._lock = threading.Lock()

    def append(self, turn: ConversationTurn) -> List[ConversationTurn]:
        """Add a turn and return whatever was evicted to stay in bounds."""
        evicted = []
        with self._lock:
            self._turns[next(self._sequence)] = turn
            while len(self._turns) > self.capacity:
                _, oldest = self._turns.popitem(last=False)
                evicted.append(oldest)
        return evicted

    def turns(self) -> List[ConversationTurn]:
        with self._lock:
            return list(self._turns.values())

    def clear(self):
        with self._lock:
            self._turns.clear()

    def __len__(self):
        with self._lock:
            return len(self._turns)


def calculate_importance_score(user_input: str, response: str) -> float:
    """Heuristic weight for a stored interaction, capped at 10.0."""
    score = 1.0
    if len(user_input) > 100:
        score += 1.0
    if len(response) > 200:
        score += 1.0
    if URGENCY_PATTERN.search(user_input):
        score += 2.0
    return min(score, MAX_IMPORTANCE)
