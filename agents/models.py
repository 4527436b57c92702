from django.db import models
from django.utils import timezone


class Agent(models.Model):
    """
    Persistent record for one agent persona on the platform.

    The resilience manager returns either an Agent or a FallbackRecord;
    both expose ``fallback`` so callers can branch on degraded mode.
    """

    class Status(models.TextChoices):
        ACTIVE = 'active', 'Active'
        INACTIVE = 'inactive', 'Inactive'
        MAINTENANCE = 'maintenance', 'Maintenance'

    fallback = False

    name = models.CharField(max_length=100)
    agent_type = models.CharField(max_length=50, db_index=True)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE
    )
    tagline = models.CharField(max_length=255, blank=True, default='')
    description = models.TextField(blank=True, default='')

    # Either a list of traits or a dict with primary_traits,
    # communication_style and expertise_level
    personality_traits = models.JSONField(default=dict, blank=True)
    capabilities = models.JSONField(default=list, blank=True)
    specializations = models.JSONField(default=list, blank=True)
    configuration = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['agent_type', '-updated_at']
        indexes = [
            models.Index(fields=['agent_type', 'status'], name='agents_agen_agent_t_4c1f2a_idx'),
        ]

    def __str__(self):
        return f"{self.name} ({self.agent_type}) - {self.status}"

    @property
    def is_active(self) -> bool:
        return self.status == self.Status.ACTIVE


class AgentMemoryQuerySet(models.QuerySet):
    def expired(self, now=None):
        return self.filter(expires_at__lt=now or timezone.now())

    def live(self, now=None):
        return self.filter(
            models.Q(expires_at__isnull=True) | models.Q(expires_at__gte=now or timezone.now())
        )


class AgentMemory(models.Model):
    """Durable memory blob scoped to an agent and a category."""

    CATEGORY_CHOICES = [
        ('conversation', 'Conversation'),
        ('preference', 'Preference'),
        ('knowledge', 'Knowledge'),
    ]

    agent = models.ForeignKey(
        Agent,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='memories'
    )
    # Kept alongside the FK so fallback agents (no row) can still persist
    owner_type = models.CharField(max_length=50, db_index=True)
    owner_id = models.CharField(max_length=100)

    category = models.CharField(max_length=30, choices=CATEGORY_CHOICES)
    name = models.CharField(max_length=255)
    content = models.JSONField(default=dict)
    importance_score = models.FloatField(default=1.0)
    expires_at = models.DateTimeField(blank=True, null=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = AgentMemoryQuerySet.as_manager()

    class Meta:
        ordering = ['-created_at']
        verbose_name_plural = 'Agent memories'
        indexes = [
            models.Index(fields=['owner_type', 'category', 'name'], name='agents_agen_owner_t_9b3e7d_idx'),
        ]

    def __str__(self):
        return f"{self.owner_type}/{self.category}/{self.name}"

    @property
    def is_expired(self) -> bool:
        return bool(self.expires_at and self.expires_at < timezone.now())

    @classmethod
    def store_memory(cls, owner, category, name, content, expires_at=None, importance_score=1.0):
        agent = owner if isinstance(owner, Agent) and owner.pk else None
        return cls.objects.create(
            agent=agent,
            owner_type=owner.agent_type,
            owner_id=str(owner.id),
            category=category,
            name=name,
            content=content,
            expires_at=expires_at,
            importance_score=importance_score,
        )
