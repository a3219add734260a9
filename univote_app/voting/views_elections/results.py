"""Election results and turnout statistics."""

from django.http import HttpRequest, JsonResponse
from django.utils import timezone
from django.views.decorators.http import require_GET

from voting.elections_services import ElectionError
from voting.elections_status import current_status
from voting.elections_tally import (
    CandidateStanding,
    candidate_competition,
    compute_tally,
    election_vote_statistics,
)
from voting.models import Election
from voting.permissions import VOTING_MANAGE_ELECTION, is_election_admin, json_login_required, json_permission_required
from voting.views_elections._helpers import _election_error_response, _get_election


def _standing_payload(standing: CandidateStanding) -> dict[str, object]:
    return {
        "candidate_id": standing.candidate_id,
        "name": standing.name,
        "vote_count": standing.vote_count,
        "percentage": standing.percentage,
    }


@require_GET
@json_login_required
def election_results(request: HttpRequest, election_id: int) -> JsonResponse:
    election = _get_election(election_id)

    status = current_status(election=election, now=timezone.now())
    if status != Election.Status.completed and not is_election_admin(request.user):
        return JsonResponse(
            {"ok": False, "error": "Results are available once the election has ended.", "code": "results_unavailable"},
            status=403,
        )

    try:
        tally = compute_tally(election=election)
    except ElectionError as exc:
        return _election_error_response(exc)

    return JsonResponse(
        {
            "ok": True,
            "election_id": tally.election_id,
            "status": str(status),
            "total_unique_voters": tally.total_unique_voters,
            "positions": [
                {
                    "position": position.position,
                    "total_votes": position.total_votes,
                    "abstain_count": position.abstain_count,
                    "candidates": [_standing_payload(s) for s in position.candidates],
                    "winner": _standing_payload(position.winner) if position.winner is not None else None,
                }
                for position in tally.positions
            ],
        }
    )


@require_GET
@json_permission_required(VOTING_MANAGE_ELECTION)
def election_statistics(request: HttpRequest, election_id: int) -> JsonResponse:
    election = _get_election(election_id)

    try:
        stats = election_vote_statistics(election=election)
        competition = candidate_competition(election=election)
    except ElectionError as exc:
        return _election_error_response(exc)

    return JsonResponse(
        {
            "ok": True,
            "election_id": election.id,
            "total_eligible_voters": int(election.total_eligible_voters or 0),
            "total_unique_voters": stats.total_unique_voters,
            "total_votes_count": stats.total_votes_count,
            "total_candidate_votes": stats.total_candidate_votes,
            "total_abstentions": stats.total_abstentions,
            "participation_rate": round(stats.participation_rate, 2),
            "position_stats": [
                {
                    "position": p.position,
                    "total_votes": p.total_votes,
                    "candidate_votes": p.candidate_votes,
                    "abstentions": p.abstentions,
                }
                for p in stats.position_stats
            ],
            "votes_over_time": [{"date": day.isoformat(), "votes": count} for day, count in stats.votes_over_time],
            "college_participation": [
                {"college": c.college, "votes": c.votes, "percentage": round(c.percentage, 2)}
                for c in stats.college_participation
            ],
            "candidate_competition": [
                {
                    "position": c.position,
                    "total_candidates": c.total_candidates,
                    "competition_level": c.competition_level,
                }
                for c in competition
            ],
        }
    )
