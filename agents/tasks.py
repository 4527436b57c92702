import logging
from datetime import timedelta

from django.conf import settings
from django.utils import timezone
from django_huey import periodic_task
from huey import crontab

from .models import AgentMemory

logger = logging.getLogger(__name__)


@periodic_task(crontab(hour=3, minute=30))
def agent_memory_cleanup_task():
    """
    Periodic retention cleanup for durable agent memory.

    Removes memories past their expiry plus anything older than
    AGENT_MEMORY_RETENTION_DAYS that was stored without an expiry.
    """
    retention_days = getattr(settings, "AGENT_MEMORY_RETENTION_DAYS", 30)
    now = timezone.now()
    cutoff = now - timedelta(days=int(retention_days))

    deleted_expired, _ = AgentMemory.objects.expired(now).delete()
    deleted_stale, _ = AgentMemory.objects.filter(
        expires_at__isnull=True, created_at__lt=cutoff
    ).delete()

    logger.info(
        "Agent memory cleanup completed. "
        f"deleted_expired={deleted_expired} deleted_stale={deleted_stale}"
    )
    return {'expired': deleted_expired, 'stale': deleted_stale}
