import hmac
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from django.core.exceptions import ObjectDoesNotExist

from voting.models import ALL_YEAR_LEVELS, UNIVERSITY_WIDE, Election
from voting.permissions import VOTING_CAST_VOTE

logger = logging.getLogger(__name__)

NO_VOTER_PRIVILEGES_REASON = "You must have voter privileges to participate in this election"


class EligibilityRules(Protocol):
    """The election attributes the evaluator reads. ``Election`` satisfies it."""

    restrict_voting: bool
    colleges: Sequence[str]
    eligible_year_levels: Sequence[str]


@dataclass(frozen=True)
class VoterProfile:
    user_id: int | None
    department: str
    year_level: str
    can_vote: bool


@dataclass(frozen=True)
class EligibilityResult:
    eligible: bool
    reason: str | None
    department_ok: bool = True
    year_level_ok: bool = True


def _allows(values: Sequence[str] | None, *, sentinel: str, actual: str) -> bool:
    allowed = list(values or [])
    return not allowed or sentinel in allowed or actual in allowed


def _ineligibility_reason(
    *,
    voter: VoterProfile,
    rules: EligibilityRules,
    department_ok: bool,
    year_level_ok: bool,
) -> str:
    colleges = ", ".join(rules.colleges or [])
    year_levels = ", ".join(rules.eligible_year_levels or [])
    department = voter.department or "no college"
    year_level = voter.year_level or "no year level"

    if not department_ok and not year_level_ok:
        return (
            f"This election is for {colleges} colleges and {year_levels} year levels. "
            f"Your profile shows you're in {department} and are {year_level}."
        )
    if not department_ok:
        return f"This election is for {colleges} colleges, but your profile shows you're in {department}."
    return f"This election is for {year_levels} year levels, but your profile shows you're in {year_level}."


def evaluate_eligibility(voter: VoterProfile, election: EligibilityRules) -> EligibilityResult:
    """Decide whether ``voter`` may take part in ``election``.

    Ineligibility is an expected outcome, so this never raises; the result
    carries a message naming the failed check(s) for display. Voter
    capability (the role check) is not evaluated here.
    """

    if not election.restrict_voting:
        return EligibilityResult(eligible=True, reason=None)

    department_ok = _allows(election.colleges, sentinel=UNIVERSITY_WIDE, actual=voter.department)
    year_level_ok = _allows(election.eligible_year_levels, sentinel=ALL_YEAR_LEVELS, actual=voter.year_level)

    if department_ok and year_level_ok:
        return EligibilityResult(eligible=True, reason=None)

    return EligibilityResult(
        eligible=False,
        reason=_ineligibility_reason(
            voter=voter,
            rules=election,
            department_ok=department_ok,
            year_level_ok=year_level_ok,
        ),
        department_ok=department_ok,
        year_level_ok=year_level_ok,
    )


def voter_profile_for_user(user: object) -> VoterProfile | None:
    """Build the core's view of a Django user, or None for anonymous sessions."""
    if user is None or not getattr(user, "is_authenticated", False):
        return None

    department = ""
    year_level = ""
    try:
        profile = user.profile
    except ObjectDoesNotExist:
        profile = None
    if profile is not None:
        department = str(profile.department or "").strip()
        year_level = str(profile.year_level or "").strip()

    return VoterProfile(
        user_id=user.pk,
        department=department,
        year_level=year_level,
        can_vote=bool(user.has_perm(VOTING_CAST_VOTE)),
    )


def access_code_matches(*, election: Election, access_code: str | None) -> bool:
    if not election.is_private:
        return True
    expected = str(election.access_code or "")
    if not expected:
        logger.warning("election_access_code_missing election_id=%s", election.id)
        return False
    return hmac.compare_digest(expected.encode("utf-8"), str(access_code or "").encode("utf-8"))
