from __future__ import annotations

import datetime
import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from django.db import DatabaseError
from django.utils import timezone

from voting.elections_services import ElectionStorageError
from voting.models import UNIVERSITY_WIDE, BallotEntry, Candidate, Election, Profile

logger = logging.getLogger(__name__)

UNKNOWN_COLLEGE = "Unknown"


@dataclass(frozen=True)
class LedgerRow:
    voter_id: int
    position: str
    candidate_id: int | None


@dataclass(frozen=True)
class CandidateStanding:
    candidate_id: int
    name: str
    vote_count: int
    percentage: int


@dataclass(frozen=True)
class PositionTally:
    position: str
    candidates: list[CandidateStanding]
    total_votes: int
    abstain_count: int
    winner: CandidateStanding | None


@dataclass(frozen=True)
class ElectionTally:
    election_id: int
    positions: list[PositionTally]
    total_unique_voters: int


@dataclass(frozen=True)
class PositionStats:
    position: str
    total_votes: int
    candidate_votes: int
    abstentions: int


@dataclass(frozen=True)
class CollegeParticipation:
    college: str
    votes: int
    percentage: float


@dataclass(frozen=True)
class VoteStatistics:
    total_unique_voters: int
    total_votes_count: int
    total_candidate_votes: int
    total_abstentions: int
    participation_rate: float
    position_stats: list[PositionStats]
    votes_over_time: list[tuple[datetime.date, int]]
    college_participation: list[CollegeParticipation]


@dataclass(frozen=True)
class PositionCompetition:
    position: str
    total_candidates: int
    competition_level: str


def _percentage(count: int, total: int) -> int:
    if total <= 0:
        return 0
    # Half-up rounding of count / total * 100 using integers only.
    return (count * 200 + total) // (total * 2)


def _tally_position(
    *,
    position: str,
    rows: Sequence[LedgerRow],
    candidate_names: Mapping[int, str],
) -> PositionTally:
    counts: dict[int, int] = {}
    abstain_count = 0
    for row in rows:
        if row.candidate_id is None:
            abstain_count += 1
        else:
            counts[row.candidate_id] = counts.get(row.candidate_id, 0) + 1

    total_votes = len(rows)
    standings = [
        CandidateStanding(
            candidate_id=candidate_id,
            name=candidate_names.get(candidate_id, ""),
            vote_count=count,
            percentage=_percentage(count, total_votes),
        )
        for candidate_id, count in sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    ]

    winner: CandidateStanding | None = None
    if standings and standings[0].vote_count > 0:
        leaders = [s for s in standings if s.vote_count == standings[0].vote_count]
        if len(leaders) == 1:
            winner = leaders[0]

    return PositionTally(
        position=position,
        candidates=standings,
        total_votes=total_votes,
        abstain_count=abstain_count,
        winner=winner,
    )


def tally_ballot_entries(
    *,
    election_id: int,
    positions: Sequence[str],
    entries: Iterable[LedgerRow],
    candidate_names: Mapping[int, str],
) -> ElectionTally:
    """Aggregate ledger rows into per-position standings.

    Every position appears in ballot order even without entries. Abstentions
    count toward ``total_votes`` but never toward standings or the winner.
    Rows for positions outside ``positions`` are left out of the standings but
    still count toward ``total_unique_voters``.
    """

    rows_by_position: dict[str, list[LedgerRow]] = {position: [] for position in positions}
    voters: set[int] = set()
    for row in entries:
        # Counted before the position filter.
        voters.add(row.voter_id)
        bucket = rows_by_position.get(row.position)
        if bucket is None:
            continue
        bucket.append(row)

    return ElectionTally(
        election_id=election_id,
        positions=[
            _tally_position(position=position, rows=rows_by_position[position], candidate_names=candidate_names)
            for position in positions
        ],
        total_unique_voters=len(voters),
    )


def _ledger_rows(*, election: Election) -> list[LedgerRow]:
    return [
        LedgerRow(voter_id=voter_id, position=position, candidate_id=candidate_id)
        for voter_id, position, candidate_id in BallotEntry.objects.for_election(election=election)
        .order_by("id")
        .values_list("voter_id", "position", "candidate_id")
    ]


def compute_tally(*, election: Election) -> ElectionTally:
    try:
        entries = _ledger_rows(election=election)
        candidate_names = dict(Candidate.objects.filter(election=election).values_list("id", "name"))
    except DatabaseError as exc:
        logger.error("election_tally_read_failed election_id=%s error=%s", election.id, exc)
        raise ElectionStorageError("Could not read election results. Please try again.") from exc

    return tally_ballot_entries(
        election_id=election.id,
        positions=[str(p) for p in (election.positions or [])],
        entries=entries,
        candidate_names=candidate_names,
    )


def total_unique_voters(*, election: Election) -> int:
    try:
        return BallotEntry.objects.for_election(election=election).values("voter_id").distinct().count()
    except DatabaseError as exc:
        raise ElectionStorageError("Could not count voters. Please try again.") from exc


def _college_participation(
    *,
    voters_per_college: Mapping[str, int],
    colleges: Sequence[str],
    eligible: int,
) -> list[CollegeParticipation]:
    """Voters per college, as a share of the eligible count split evenly across listed colleges.

    Without listed colleges there is no per-college denominator and every
    percentage is 0. Listed colleges with no voters still appear.
    """

    listed = [c for c in colleges if c and c != UNIVERSITY_WIDE]
    share = eligible / len(listed) if listed else 0.0

    votes_by_college = dict(voters_per_college)
    for college in listed:
        votes_by_college.setdefault(college, 0)

    return [
        CollegeParticipation(
            college=college,
            votes=votes,
            percentage=(votes / share) * 100 if share > 0 and college in listed else 0.0,
        )
        for college, votes in sorted(votes_by_college.items(), key=lambda item: (-item[1], item[0]))
    ]


def election_vote_statistics(*, election: Election) -> VoteStatistics:
    """Turnout figures for the results dashboard."""

    try:
        rows = list(
            BallotEntry.objects.for_election(election=election).values_list(
                "voter_id", "position", "candidate_id", "created_at"
            )
        )
        voter_ids = {voter_id for voter_id, _position, _candidate_id, _created_at in rows}
        department_by_user_id = dict(
            Profile.objects.filter(user_id__in=voter_ids).values_list("user_id", "department")
        )
    except DatabaseError as exc:
        logger.error("election_statistics_read_failed election_id=%s error=%s", election.id, exc)
        raise ElectionStorageError("Could not read election statistics. Please try again.") from exc

    positions = [str(p) for p in (election.positions or [])]
    per_position: dict[str, list[int]] = {position: [0, 0] for position in positions}
    first_vote_by_voter: dict[int, datetime.datetime] = {}
    for voter_id, position, candidate_id, created_at in rows:
        counts = per_position.get(position)
        if counts is not None:
            counts[0 if candidate_id is not None else 1] += 1
        seen = first_vote_by_voter.get(voter_id)
        if seen is None or created_at < seen:
            first_vote_by_voter[voter_id] = created_at

    position_stats = [
        PositionStats(
            position=position,
            total_votes=candidate_votes + abstentions,
            candidate_votes=candidate_votes,
            abstentions=abstentions,
        )
        for position, (candidate_votes, abstentions) in per_position.items()
    ]

    voters_per_day: dict[datetime.date, int] = {}
    for created_at in first_vote_by_voter.values():
        day = timezone.localtime(created_at).date() if timezone.is_aware(created_at) else created_at.date()
        voters_per_day[day] = voters_per_day.get(day, 0) + 1

    voters_per_college: dict[str, int] = {}
    for voter_id in first_vote_by_voter:
        college = str(department_by_user_id.get(voter_id) or "").strip() or UNKNOWN_COLLEGE
        voters_per_college[college] = voters_per_college.get(college, 0) + 1

    unique_voters = len(first_vote_by_voter)
    eligible = int(election.total_eligible_voters or 0)
    participation_rate = (unique_voters / eligible) * 100 if eligible > 0 else 0.0

    college_participation = _college_participation(
        voters_per_college=voters_per_college,
        colleges=[str(c) for c in (election.colleges or [])],
        eligible=eligible,
    )

    total_candidate_votes = sum(s.candidate_votes for s in position_stats)
    total_abstentions = sum(s.abstentions for s in position_stats)
    return VoteStatistics(
        total_unique_voters=unique_voters,
        total_votes_count=total_candidate_votes + total_abstentions,
        total_candidate_votes=total_candidate_votes,
        total_abstentions=total_abstentions,
        participation_rate=participation_rate,
        position_stats=position_stats,
        votes_over_time=sorted(voters_per_day.items()),
        college_participation=college_participation,
    )


def candidate_competition(*, election: Election) -> list[PositionCompetition]:
    try:
        candidate_positions = list(Candidate.objects.filter(election=election).values_list("position", flat=True))
    except DatabaseError as exc:
        raise ElectionStorageError("Could not read candidates. Please try again.") from exc

    counts: dict[str, int] = {}
    for position in candidate_positions:
        counts[position] = counts.get(position, 0) + 1

    return [
        PositionCompetition(
            position=position,
            total_candidates=counts.get(position, 0),
            competition_level="Contested" if counts.get(position, 0) > 1 else "Uncontested",
        )
        for position in [str(p) for p in (election.positions or [])]
    ]
