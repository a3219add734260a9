from typing import override

from django.core.management.base import BaseCommand
from django.utils import timezone

from voting.elections_status import sync_election_statuses


class Command(BaseCommand):
    help = "Recompute each election's status from its start/end dates and store the result."

    @override
    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show which elections would change without writing anything.",
        )

    @override
    def handle(self, *args, **options) -> None:
        dry_run: bool = bool(options.get("dry_run"))

        changes = sync_election_statuses(clock=timezone.now, dry_run=dry_run)

        prefix = "[dry-run] " if dry_run else ""
        for change in changes:
            self.stdout.write(f"{prefix}election {change.election_id}: {change.previous} -> {change.current}")
        self.stdout.write(f"{prefix}{len(changes)} election(s) updated.")
