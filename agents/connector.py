"""
Connection Resilience Manager for agent records.

``connect`` is total: whatever the record store does, the caller gets back
either a real Agent or a FallbackRecord flagged ``fallback=True``, so page
rendering never hard-fails on a store hiccup.

Retry policy:
- StoreUnavailable: wait ``attempt x backoff_unit`` seconds, retry until the
  attempt budget is spent, then degrade.
- StoreAuthError: degrade immediately, no waiting.
- anything else: log the error kind and degrade immediately.
"""
import logging
import secrets
import threading
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from django.utils import timezone

from .exceptions import StoreAuthError, StoreUnavailable
from .models import Agent
from .stores import AgentStore, DjangoAgentStore

logger = logging.getLogger(__name__)

STATES = {
    'connected': 'connected',
    'disconnected': 'disconnected',
    'error': 'error',
    'retrying': 'retrying',
}

DEFAULT_RETRIES = 3
DEFAULT_BACKOFF_UNIT = 2.0

DEFAULT_AGENT_TYPES = ('infoseek', 'neochat', 'datavision', 'codemaster')

TROUBLESHOOTING_TIPS = [
    '1. Verify the database server is running',
    '2. Check the host allow-list includes this server',
    '3. Validate DATABASE_URL and PG* environment variables',
    '4. Ensure the database user has proper permissions',
    '5. Check network connectivity to the database host',
]


def humanize(agent_type: str) -> str:
    return str(agent_type).replace('_', ' ').strip().capitalize()


@dataclass(frozen=True)
class FallbackRecord:
    """Synthetic agent used when the record store cannot serve a real one."""
    agent_type: str
    name: str
    id: str
    reason: str
    status: str = 'active'
    created_at: datetime = field(default_factory=timezone.now)
    tagline: str = ''
    personality_traits: Dict[str, Any] = field(default_factory=dict)
    capabilities: Tuple[str, ...] = ()
    configuration: Dict[str, Any] = field(default_factory=dict)
    fallback: bool = True

    pk = None

    @classmethod
    def for_type(cls, agent_type: str, reason: str) -> "FallbackRecord":
        return cls(
            agent_type=agent_type,
            name=humanize(agent_type),
            id=f"mock_{agent_type}_{secrets.token_hex(4)}",
            reason=reason,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['created_at'] = self.created_at.isoformat()
        data['capabilities'] = list(self.capabilities)
        return data


AgentRecord = Union[Agent, FallbackRecord]


@dataclass
class ConnectionHealth:
    status: str
    timestamp: datetime = field(default_factory=timezone.now)
    error: Optional[str] = None
    suggestion: List[str] = field(default_factory=list)
    database: Optional[str] = None
    server_info: Optional[Dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.status == STATES['connected']

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'status': self.status,
            'timestamp': self.timestamp.isoformat(),
        }
        if self.ok:
            data.update(database=self.database, server_info=self.server_info)
        else:
            data.update(error=self.error, suggestion=self.suggestion)
        return data


class Backoff:
    """
    Cancellable, deadline-aware retry delay.

    ``wait(attempt)`` blocks for ``attempt x unit`` seconds unless the
    backoff is cancelled from another thread or the wait would run past
    ``deadline`` (a ``time.monotonic()`` value). It returns False when the
    caller should stop retrying.
    """

    def __init__(self, unit: float = DEFAULT_BACKOFF_UNIT, deadline: Optional[float] = None,
                 cancel_event: Optional[threading.Event] = None):
        self.unit = unit
        self.deadline = deadline
        self._cancelled = cancel_event or threading.Event()
        self.delays: List[float] = []

    @classmethod
    def within(cls, seconds: float, unit: float = DEFAULT_BACKOFF_UNIT) -> "Backoff":
        return cls(unit=unit, deadline=time.monotonic() + seconds)

    def delay_for(self, attempt: int) -> float:
        return attempt * self.unit

    def cancel(self):
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def total_delay(self) -> float:
        return sum(self.delays)

    def wait(self, attempt: int) -> bool:
        delay = self.delay_for(attempt)
        if self.cancelled:
            return False
        if self.deadline is not None and time.monotonic() + delay > self.deadline:
            return False

        self.delays.append(delay)
        if delay <= 0:
            return True
        return not self._cancelled.wait(delay)


class ConnectionResilienceManager:
    def __init__(
        self,
        store: Optional[AgentStore] = None,
        retries: int = DEFAULT_RETRIES,
        backoff_unit: float = DEFAULT_BACKOFF_UNIT,
        connect_deadline: Optional[float] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.store = store or DjangoAgentStore()
        self.retries = retries
        self.backoff_unit = backoff_unit
        self.connect_deadline = connect_deadline
        self.logger = logger or logging.getLogger(__name__)

    def new_backoff(self) -> Backoff:
        if self.connect_deadline is not None:
            return Backoff.within(self.connect_deadline, unit=self.backoff_unit)
        return Backoff(unit=self.backoff_unit)

    def connect(self, agent_type: str, retries: Optional[int] = None,
                backoff: Optional[Backoff] = None) -> AgentRecord:
        retries = max(1, retries if retries is not None else self.retries)
        backoff = backoff or self.new_backoff()
        attempt = 0

        while True:
            attempt += 1
            self.logger.info(f"Connecting to {agent_type} agent (attempt {attempt}/{retries})")
            try:
                return self._connect_once(agent_type)

            except StoreUnavailable as e:
                self.logger.error(f"Record store unavailable for {agent_type} agent: {e}")
                if attempt >= retries:
                    self.logger.error(f"Maximum retries exceeded for {agent_type} agent. Using fallback.")
                    return self._fallback(agent_type, f"store unavailable after {attempt} attempts: {e}")

                self.logger.info(
                    f"Retrying {agent_type} agent connection in {backoff.delay_for(attempt)} seconds..."
                )
                if not backoff.wait(attempt):
                    self.logger.warning(f"Retry for {agent_type} agent aborted (cancelled or past deadline)")
                    return self._fallback(agent_type, f"retry aborted after {attempt} attempts: {e}")

            except StoreAuthError as e:
                self.logger.error(f"Record store authentication failed for {agent_type} agent: {e}")
                self.logger.error("Authentication issue detected. Check database credentials.")
                return self._fallback(agent_type, f"authentication failed: {e}")

            except Exception as e:
                self.logger.error(f"Unexpected error during {agent_type} agent boot: {e.__class__.__name__}: {e}")
                return self._fallback(agent_type, f"{e.__class__.__name__}: {e}")

    def _connect_once(self, agent_type: str) -> AgentRecord:
        self.store.ping()

        agent = (
            self.store.find_by_type_and_status(agent_type, Agent.Status.ACTIVE)
            or self.store.find_by_type(agent_type)
        )
        if agent:
            self.logger.info(
                f"Agent {agent_type} loaded: ID={getattr(agent, 'id', None)} Status={getattr(agent, 'status', None)}"
            )
            return agent

        self.logger.warning(f"No active agent of type '{agent_type}' found - creating one")
        return self._create_agent(agent_type)

    def _create_agent(self, agent_type: str) -> AgentRecord:
        try:
            return self.store.create(agent_type, humanize(agent_type), Agent.Status.ACTIVE)
        except Exception as e:
            self.logger.error(f"Failed to create {agent_type} agent record: {e}")
            return self._fallback(agent_type, f"record creation failed: {e}")

    def _fallback(self, agent_type: str, reason: str) -> FallbackRecord:
        record = FallbackRecord.for_type(agent_type, reason)
        self.logger.warning(f"Using fallback agent {record.id}: {reason}")
        return record

    def connect_all(self, agent_types: Iterable[str] = DEFAULT_AGENT_TYPES) -> Dict[str, Any]:
        agent_types = list(agent_types)
        results = {agent_type: self.connect(agent_type) for agent_type in agent_types}
        connected = sum(1 for record in results.values() if not record.fallback)

        self.logger.info(f"Batch connection completed. Success: {connected}/{len(agent_types)}")
        return {
            'results': results,
            'connected': connected,
            'total': len(agent_types),
        }

    def health_check(self) -> ConnectionHealth:
        try:
            self.store.ping()
            return ConnectionHealth(
                status=STATES['connected'],
                database=self.store.database_name(),
                server_info=self.store.server_info(),
            )
        except Exception as e:
            return ConnectionHealth(
                status=STATES['error'],
                error=str(e),
                suggestion=list(TROUBLESHOOTING_TIPS),
            )

    def connection_stats(self) -> Dict[str, Any]:
        try:
            return self.store.stats()
        except Exception as e:
            return {'error': str(e)}


def get_connection_manager() -> ConnectionResilienceManager:
    from django.conf import settings

    deadline = getattr(settings, 'AGENT_CONNECT_DEADLINE', None)
    return ConnectionResilienceManager(
        retries=getattr(settings, 'AGENT_CONNECT_RETRIES', DEFAULT_RETRIES),
        backoff_unit=getattr(settings, 'AGENT_BACKOFF_UNIT', DEFAULT_BACKOFF_UNIT),
        connect_deadline=float(deadline) if deadline else None,
    )
