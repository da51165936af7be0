"""
Management command to remove artifacts that outlived their expiry window.

Expiry records live in memory, so files downloaded just before a restart are
never swept. This command removes anything in the download directory older
than the window, including leftover request directories.
"""

from django.core.management.base import BaseCommand

from clips.service.config import get_expiry_minutes
from clips.service.store import get_store


class Command(BaseCommand):
    help = 'Delete downloaded files older than the expiry window'

    def add_arguments(self, parser):
        parser.add_argument(
            '--max-age',
            type=int,
            default=None,
            help='Age in minutes after which an artifact is removed (default: expiry window)',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be deleted without actually deleting',
        )

    def handle(self, *args, **options):
        max_age_minutes = options['max_age']
        if max_age_minutes is None:
            max_age_minutes = get_expiry_minutes()
        dry_run = options['dry_run']

        store = get_store()
        removed = store.reap_stale(max_age_minutes * 60, dry_run=dry_run)

        if not removed:
            self.stdout.write(
                self.style.SUCCESS(f'Nothing older than {max_age_minutes} minutes in {store.root}')
            )
            return

        for entry in removed:
            prefix = 'Would delete' if dry_run else 'Deleted'
            self.stdout.write(f'{prefix}: {entry.name}')

        count = len(removed)
        noun = 'entry' if count == 1 else 'entries'
        if dry_run:
            self.stdout.write(self.style.WARNING(f'\nDRY RUN: Would delete {count} {noun}'))
        else:
            self.stdout.write(self.style.SUCCESS(f'\nDeleted {count} {noun}'))
