from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass

import post_office.mail
from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from voting.elections_eligibility import (
    NO_VOTER_PRIVILEGES_REASON,
    VoterProfile,
    evaluate_eligibility,
)
from voting.elections_status import Clock, current_status, is_voting_open
from voting.models import AuditLogEntry, BallotEntry, Candidate, Election

logger = logging.getLogger(__name__)

ABSTAIN_WIRE_VALUE = "abstain"


class ElectionError(Exception):
    code = "election_error"


class BallotValidationError(ElectionError):
    code = "invalid_ballot"


class IncompleteBallotError(BallotValidationError):
    code = "incomplete_ballot"

    def __init__(self, missing_positions: list[str]) -> None:
        self.missing_positions = list(missing_positions)
        super().__init__(
            "Please make a selection for all positions before submitting your vote. "
            f"Missing: {', '.join(self.missing_positions)}"
        )


class InvalidBallotError(BallotValidationError):
    code = "invalid_ballot"


class ElectionAuthorizationError(ElectionError):
    code = "not_authorized"


class NotAuthenticatedError(ElectionAuthorizationError):
    code = "not_authenticated"


class NotEligibleError(ElectionAuthorizationError):
    code = "not_eligible"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class ElectionConflictError(ElectionError):
    code = "conflict"


class AlreadyVotedError(ElectionConflictError):
    code = "already_voted"

    def __init__(self, message: str = "You have already voted in this election.") -> None:
        super().__init__(message)


class ElectionStateError(ElectionError):
    code = "invalid_state"


class ElectionNotActiveError(ElectionStateError):
    code = "election_not_active"

    def __init__(self, status: str) -> None:
        self.status = status
        super().__init__(f"Voting is not open for this election (status: {status}).")


class ElectionStorageError(ElectionError):
    """Transient ledger failure. Safe for the caller to retry."""

    code = "storage_failure"


@dataclass(frozen=True)
class Vote:
    candidate_id: int


@dataclass(frozen=True)
class Abstain:
    pass


type Selection = Vote | Abstain


@dataclass(frozen=True)
class BallotReceipt:
    ballot_id: uuid.UUID
    election_id: int
    selections: dict[str, Selection]
    first_candidate_id: int | None


def parse_selections(raw: object) -> dict[str, Selection]:
    """Convert a wire payload ({position: candidate id | "abstain"}) to selections."""
    if not isinstance(raw, Mapping):
        raise InvalidBallotError("Invalid ballot: selections must be an object keyed by position")

    selections: dict[str, Selection] = {}
    for position, value in raw.items():
        key = str(position)
        if isinstance(value, str) and value.strip().lower() == ABSTAIN_WIRE_VALUE:
            selections[key] = Abstain()
            continue
        # Whole ids only; floats and signed strings are rejected, never truncated.
        if isinstance(value, int) and not isinstance(value, bool):
            selections[key] = Vote(candidate_id=value)
        elif isinstance(value, str) and value.strip().isdecimal():
            selections[key] = Vote(candidate_id=int(value.strip()))
        else:
            raise InvalidBallotError(f"Invalid ballot: bad selection for {key}")
    return selections


def _validate_selections(*, election: Election, positions: list[str], selections: Mapping[str, Selection]) -> None:
    missing = [p for p in positions if p not in selections]
    if missing:
        raise IncompleteBallotError(missing_positions=missing)

    unknown = sorted(p for p in selections if p not in positions)
    if unknown:
        raise InvalidBallotError(f"Invalid ballot: positions not on this ballot: {', '.join(unknown)}")

    voted: dict[str, int] = {}
    for position in positions:
        selection = selections[position]
        if isinstance(selection, Vote):
            voted[position] = selection.candidate_id
        elif not isinstance(selection, Abstain):
            raise InvalidBallotError(f"Invalid ballot: bad selection for {position}")

    if not voted:
        return

    position_by_candidate_id = dict(
        Candidate.objects.filter(election=election, id__in=set(voted.values())).values_list("id", "position")
    )
    for position, candidate_id in voted.items():
        if position_by_candidate_id.get(candidate_id) != position:
            raise InvalidBallotError(
                f"Invalid ballot: candidate {candidate_id} is not running for {position} in this election"
            )


def has_voted(*, election: Election, user_id: int) -> bool:
    return BallotEntry.objects.for_voter(election=election, user_id=user_id).exists()


def _compensate_partial_ballot(*, election: Election, ballot_id: uuid.UUID) -> None:
    # Only rows carrying this attempt's ballot_id; a concurrent complete ballot stays intact.
    try:
        with transaction.atomic():
            deleted, _ = BallotEntry.objects.filter(election=election, ballot_id=ballot_id).delete()
    except Exception:
        logger.exception(
            "ballot_compensation_failed election_id=%s ballot_id=%s",
            election.id,
            ballot_id,
        )
        return

    if deleted:
        logger.warning(
            "ballot_compensated election_id=%s ballot_id=%s deleted=%d",
            election.id,
            ballot_id,
            deleted,
        )


def submit_ballot(
    *,
    election: Election,
    voter: VoterProfile | None,
    selections: Mapping[str, Selection],
    admin_override: bool = False,
    clock: Clock = timezone.now,
) -> BallotReceipt:
    """Record one complete ballot for ``voter`` or raise a typed ``ElectionError``.

    ``admin_override`` skips the voter capability and eligibility checks. It
    never skips the double-vote check.

    The ``(election, voter, position)`` unique constraint is the real guard
    against double voting; the existence check below only gives a friendlier
    early answer.
    """

    if voter is None or not voter.user_id:
        raise NotAuthenticatedError("You need to be logged in to vote.")

    now = clock()
    if not is_voting_open(election=election, now=now):
        raise ElectionNotActiveError(status=str(current_status(election=election, now=now)))

    positions = [str(p) for p in (election.positions or [])]
    if not positions:
        raise ElectionStateError("This election has no positions to vote for.")

    if not admin_override:
        if not voter.can_vote:
            raise NotEligibleError(NO_VOTER_PRIVILEGES_REASON)
        eligibility = evaluate_eligibility(voter, election)
        if not eligibility.eligible:
            raise NotEligibleError(eligibility.reason or "You are not eligible to vote in this election.")

    _validate_selections(election=election, positions=positions, selections=selections)

    try:
        already_voted = has_voted(election=election, user_id=voter.user_id)
    except DatabaseError as exc:
        raise ElectionStorageError("Could not verify voting status. Please try again.") from exc
    if already_voted:
        raise AlreadyVotedError()

    ballot_id = uuid.uuid4()
    entries = [
        BallotEntry(
            election=election,
            voter_id=voter.user_id,
            position=position,
            candidate_id=selection.candidate_id if isinstance(selection, Vote) else None,
            ballot_id=ballot_id,
        )
        for position in positions
        for selection in (selections[position],)
    ]

    try:
        with transaction.atomic():
            BallotEntry.objects.bulk_create(entries)
            AuditLogEntry.objects.create(
                election=election,
                event_type="ballot_submitted",
                payload={
                    "ballot_id": str(ballot_id),
                    "positions": len(entries),
                    "admin_override": bool(admin_override),
                },
                is_public=False,
            )
    except IntegrityError as exc:
        if has_voted(election=election, user_id=voter.user_id):
            logger.info(
                "ballot_rejected_duplicate election_id=%s user_id=%s",
                election.id,
                voter.user_id,
            )
            raise AlreadyVotedError() from exc
        _compensate_partial_ballot(election=election, ballot_id=ballot_id)
        raise ElectionStorageError("Failed to record your vote. Please try again.") from exc
    except DatabaseError as exc:
        logger.error(
            "ballot_write_failed election_id=%s ballot_id=%s error=%s",
            election.id,
            ballot_id,
            exc,
        )
        _compensate_partial_ballot(election=election, ballot_id=ballot_id)
        raise ElectionStorageError("Failed to record your vote. Please try again.") from exc

    logger.info(
        "ballot_submitted election_id=%s ballot_id=%s positions=%d admin_override=%s",
        election.id,
        ballot_id,
        len(entries),
        admin_override,
    )

    first_candidate_id = next(
        (s.candidate_id for p in positions if isinstance(s := selections[p], Vote)),
        None,
    )
    return BallotReceipt(
        ballot_id=ballot_id,
        election_id=election.id,
        selections={p: selections[p] for p in positions},
        first_candidate_id=first_candidate_id,
    )


def reset_votes(*, election: Election, actor: str | None = None, clock: Clock = timezone.now) -> int:
    """Purge every ballot entry of an active election. Returns the number of rows deleted."""

    status = current_status(election=election, now=clock())
    if status != Election.Status.active:
        raise ElectionStateError(f"Votes can only be reset while the election is active (status: {status}).")

    try:
        with transaction.atomic():
            # Serialize with other resets; the delete itself is one statement.
            Election.objects.select_for_update().only("id").get(pk=election.pk)
            deleted, _ = BallotEntry.objects.for_election(election=election).delete()

            payload: dict[str, object] = {"deleted_entries": deleted}
            if actor:
                payload["actor"] = actor
            AuditLogEntry.objects.create(
                election=election,
                event_type="votes_reset",
                payload=payload,
                is_public=True,
            )
    except DatabaseError as exc:
        raise ElectionStorageError(
            f"Failed to reset votes: {exc}. The ledger was left unchanged; retry the reset."
        ) from exc

    logger.warning(
        "election_votes_reset election_id=%s deleted=%d actor=%s",
        election.id,
        deleted,
        actor or "",
    )
    return deleted


def send_vote_receipt_email(
    *,
    election: Election,
    receipt: BallotReceipt,
    email: str,
    voter_name: str = "",
) -> None:
    """Queue the vote receipt. The ballot is already recorded, so failures are only logged."""

    candidate_ids = [s.candidate_id for s in receipt.selections.values() if isinstance(s, Vote)]
    name_by_id: dict[int, str] = dict(
        Candidate.objects.filter(election=election, id__in=candidate_ids).values_list("id", "name")
    )

    choices: list[dict[str, str]] = []
    for position, selection in receipt.selections.items():
        if isinstance(selection, Vote):
            choice = name_by_id.get(selection.candidate_id, str(selection.candidate_id))
        else:
            choice = "Abstain"
        choices.append({"position": position, "choice": choice})

    context: dict[str, object] = {
        "voter_name": voter_name or email,
        "election_id": election.id,
        "election_title": election.title,
        "ballot_id": str(receipt.ballot_id),
        "choices": choices,
        "election_committee_email": settings.ELECTION_COMMITTEE_EMAIL,
    }

    try:
        post_office.mail.send(
            recipients=[email],
            sender=settings.DEFAULT_FROM_EMAIL,
            template=settings.ELECTION_VOTE_RECEIPT_EMAIL_TEMPLATE_NAME,
            context=context,
            headers={"Reply-To": settings.ELECTION_COMMITTEE_EMAIL},
            commit=True,
        )
    except Exception:
        logger.exception(
            "vote_receipt_email_failed election_id=%s ballot_id=%s",
            election.id,
            receipt.ballot_id,
        )
