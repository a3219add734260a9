"""Election status as a pure function of time and the configured dates.

The ``Election.status`` column is a display cache. Anything deciding whether
voting is allowed calls into this module with a clock instead of reading it.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Callable
from dataclasses import dataclass

from django.db import transaction
from django.utils import timezone

from voting.models import AuditLogEntry, Election

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime.datetime]


@dataclass(frozen=True)
class StatusChange:
    election_id: int
    previous: str
    current: str


def derive_status(*, now: datetime.datetime, start: datetime.datetime, end: datetime.datetime) -> Election.Status:
    if now >= end:
        return Election.Status.completed
    if now >= start:
        return Election.Status.active
    return Election.Status.upcoming


def current_status(*, election: Election, now: datetime.datetime) -> Election.Status:
    return derive_status(now=now, start=election.start_datetime, end=election.end_datetime)


def is_voting_open(*, election: Election, now: datetime.datetime) -> bool:
    """True while ``now`` lies in the half-open window [start, end)."""
    return current_status(election=election, now=now) == Election.Status.active


def is_candidacy_open(*, election: Election, now: datetime.datetime) -> bool:
    start = election.candidacy_start_datetime
    end = election.candidacy_end_datetime
    if start is None or end is None:
        return False
    return start <= now <= end


def sync_election_statuses(*, clock: Clock = timezone.now, dry_run: bool = False) -> list[StatusChange]:
    """Persist the recomputed status of every election whose cached value is stale."""
    now = clock()
    changes: list[StatusChange] = []

    elections = Election.objects.only("id", "status", "start_datetime", "end_datetime").order_by("id")
    for election in elections:
        derived = current_status(election=election, now=now)
        if election.status == derived:
            continue

        change = StatusChange(election_id=election.id, previous=str(election.status), current=str(derived))
        changes.append(change)
        if dry_run:
            continue

        with transaction.atomic():
            # Guard on the old value so a concurrent sync does not log the same transition twice.
            updated = Election.objects.filter(pk=election.pk, status=election.status).update(
                status=derived,
                updated_at=now,
            )
            if not updated:
                changes.pop()
                continue
            AuditLogEntry.objects.create(
                election_id=election.id,
                event_type="status_synced",
                payload={"previous_status": change.previous, "status": change.current},
                is_public=True,
            )

        logger.info(
            "election_status_synced election_id=%s previous=%s status=%s",
            election.id,
            change.previous,
            change.current,
        )

    return changes
