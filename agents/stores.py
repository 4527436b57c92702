"""
Record store adapters used by the agent layer.

The resilience manager and the engines talk to these small interfaces
instead of the ORM directly, so tests can swap in failing or in-memory
stores. The Django implementations translate driver errors into the
StoreUnavailable / StoreAuthError taxonomy.
"""
import logging
import re
from contextlib import contextmanager
from typing import Any, Dict, Optional, Protocol

from django.db import DatabaseError, InterfaceError, OperationalError, connections

from .exceptions import StoreAuthError, StoreUnavailable
from .models import Agent, AgentMemory

logger = logging.getLogger(__name__)

AUTH_FAILURE_PATTERN = re.compile(
    r'authentication failed|password|access denied|permission denied|not authorized',
    re.IGNORECASE
)

CONNECTIVITY_PATTERN = re.compile(
    r'could not connect|connection refused|connection reset|connection timed out|'
    r'server closed the connection|connection already closed|terminating connection|'
    r'could not translate host name|no route to host|too many connections|'
    r'the database system is (starting up|shutting down)|database is locked|timed? ?out',
    re.IGNORECASE
)


class AgentStore(Protocol):
    def ping(self) -> None: ...
    def find_by_type_and_status(self, agent_type: str, status: str): ...
    def find_by_type(self, agent_type: str): ...
    def create(self, agent_type: str, name: str, status: str): ...
    def database_name(self) -> str: ...
    def server_info(self) -> Dict[str, Any]: ...
    def stats(self) -> Dict[str, Any]: ...


class MemoryStore(Protocol):
    def store_memory(self, owner, category, name, content, expires_at=None, importance_score=1.0): ...


def classify_database_error(error: Exception) -> Exception:
    """
    Map a driver-level error onto the store taxonomy.

    Errors that are neither credential nor connectivity problems (schema
    errors such as "no such table") come back unchanged.
    """
    message = str(error)
    if AUTH_FAILURE_PATTERN.search(message):
        return StoreAuthError(message)
    if isinstance(error, InterfaceError) or CONNECTIVITY_PATTERN.search(message):
        return StoreUnavailable(message)
    return error


@contextmanager
def translate_errors():
    try:
        yield
    except (OperationalError, InterfaceError) as e:
        translated = classify_database_error(e)
        if translated is e:
            raise
        raise translated from e


class DjangoAgentStore:
    """AgentStore backed by the Agent model on a Django database alias."""

    def __init__(self, using: str = 'default'):
        self.using = using

    @property
    def connection(self):
        return connections[self.using]

    def ping(self) -> None:
        with translate_errors():
            with self.connection.cursor() as cursor:
                cursor.execute("SELECT 1")
                cursor.fetchone()

    def find_by_type_and_status(self, agent_type: str, status: str) -> Optional[Agent]:
        with translate_errors():
            return Agent.objects.using(self.using).filter(agent_type=agent_type, status=status).first()

    def find_by_type(self, agent_type: str) -> Optional[Agent]:
        with translate_errors():
            return Agent.objects.using(self.using).filter(agent_type=agent_type).first()

    def create(self, agent_type: str, name: str, status: str) -> Agent:
        with translate_errors():
            return Agent.objects.using(self.using).create(agent_type=agent_type, name=name, status=status)

    def database_name(self) -> str:
        return str(self.connection.settings_dict.get('NAME'))

    def server_info(self) -> Dict[str, Any]:
        try:
            version = self.connection.get_database_version()
            return {
                'version': '.'.join(str(part) for part in version),
                'platform': self.connection.vendor,
            }
        except (DatabaseError, AttributeError, NotImplementedError):
            return {'version': 'unknown', 'platform': 'unknown'}

    def stats(self) -> Dict[str, Any]:
        conn = self.connection
        settings_dict = conn.settings_dict
        return {
            'vendor': conn.vendor,
            'database': str(settings_dict.get('NAME')),
            'host': settings_dict.get('HOST') or 'local',
            'aliases': list(connections),
            'conn_max_age': settings_dict.get('CONN_MAX_AGE', 0),
            'connection_open': conn.connection is not None,
            'usable': conn.connection is not None and conn.is_usable(),
        }


class DjangoMemoryStore:
    """MemoryStore backed by AgentMemory."""

    def store_memory(self, owner, category, name, content, expires_at=None, importance_score=1.0):
        return AgentMemory.store_memory(
            owner,
            category,
            name,
            content,
            expires_at=expires_at,
            importance_score=importance_score,
        )
