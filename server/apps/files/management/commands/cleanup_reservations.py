"""Management command to clean up stale upload reservations."""

from datetime import timedelta
from typing import Any, Final

from django.conf import settings
from django.core.management.base import BaseCommand

from server.apps.files.logic.wiring import build_upload_coordinator

_DEFAULT_BATCH_SIZE: Final = 1000


class Command(BaseCommand):
    """Delete expired reservations and the objects they orphaned."""

    help = 'Clean up expired and long-confirmed upload reservations'

    def add_arguments(self, parser: Any) -> None:
        """Add command line arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be deleted without deleting',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=_DEFAULT_BATCH_SIZE,
            help=f'Max reservations to process (default: {_DEFAULT_BATCH_SIZE})',
        )

    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the cleanup command.

        Args:
            args: Positional arguments (unused).
            options: Command options.
        """
        dry_run = options['dry_run']
        retention = timedelta(days=settings.FILES_RESERVATION_RETENTION_DAYS)

        self.stdout.write(
            'Looking for expired reservations and reservations confirmed '
            f'more than {retention.days} days ago',
        )

        result = build_upload_coordinator().sweep(
            retention=retention,
            batch_size=options['batch_size'],
            dry_run=dry_run,
        )

        verb = 'Would purge' if dry_run else 'Purged'
        self.stdout.write(
            self.style.SUCCESS(
                f'{verb} {result.expired} expired and '
                f'{result.purged} confirmed reservations',
            ),
        )
