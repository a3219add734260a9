"""Election lifecycle actions: vote reset."""

from django.http import HttpRequest, JsonResponse
from django.views.decorators.http import require_POST

from voting.elections_services import ElectionError, reset_votes
from voting.permissions import VOTING_MANAGE_ELECTION, json_permission_required
from voting.views_elections._helpers import _actor, _election_error_response, _get_election


@require_POST
@json_permission_required(VOTING_MANAGE_ELECTION)
def election_reset_votes(request: HttpRequest, election_id: int) -> JsonResponse:
    election = _get_election(election_id)

    try:
        deleted = reset_votes(election=election, actor=_actor(request) or None)
    except ElectionError as exc:
        return _election_error_response(exc)

    return JsonResponse({"ok": True, "election_id": election.id, "deleted_entries": deleted})
