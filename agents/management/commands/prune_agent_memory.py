from datetime import timedelta

from django.core.management.base import BaseCommand
from django.utils import timezone

from agents.models import AgentMemory


class Command(BaseCommand):
    help = 'Prunes expired agent memories and undated memories past the retention window (default: 30 days)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--days',
            type=int,
            default=30,
            help='Number of days to retain memories without an expiry (default: 30)'
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be deleted without actually deleting'
        )

    def handle(self, *args, **options):
        days = options['days']
        dry_run = options['dry_run']
        now = timezone.now()
        cutoff_date = now - timedelta(days=days)

        self.stdout.write(f"Pruning agent memory (expired, or undated before {cutoff_date.date()})...")

        expired = AgentMemory.objects.expired(now)
        expired_count = expired.count()
        if dry_run:
            self.stdout.write(self.style.WARNING(f'Would delete {expired_count} expired memories'))
        else:
            deleted_expired = expired.delete()[0]
            self.stdout.write(self.style.SUCCESS(f'Deleted {deleted_expired} expired memories'))

        stale = AgentMemory.objects.filter(expires_at__isnull=True, created_at__lt=cutoff_date)
        stale_count = stale.count()
        if dry_run:
            self.stdout.write(self.style.WARNING(f'Would delete {stale_count} stale memories'))
        else:
            deleted_stale = stale.delete()[0]
            self.stdout.write(self.style.SUCCESS(f'Deleted {deleted_stale} stale memories'))

        if dry_run:
            self.stdout.write(self.style.WARNING('\nDRY RUN - No data was actually deleted'))
        else:
            self.stdout.write(self.style.SUCCESS('\nPruning complete!'))
