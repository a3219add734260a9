"""Election voting: eligibility lookup and ballot submission."""

from django.http import HttpRequest, JsonResponse
from django.utils import timezone
from django.views.decorators.http import require_GET, require_POST

from voting import elections_services
from voting.elections_eligibility import (
    NO_VOTER_PRIVILEGES_REASON,
    access_code_matches,
    evaluate_eligibility,
    voter_profile_for_user,
)
from voting.elections_services import ElectionError, Vote, parse_selections, submit_ballot
from voting.elections_status import current_status, is_voting_open
from voting.permissions import is_election_admin
from voting.views_elections._helpers import (
    _election_error_response,
    _get_election,
    _json_body,
    _not_authenticated_response,
)


@require_GET
def election_eligibility(request: HttpRequest, election_id: int) -> JsonResponse:
    election = _get_election(election_id)
    voter = voter_profile_for_user(request.user)
    if voter is None:
        return _not_authenticated_response()

    if voter.can_vote:
        result = evaluate_eligibility(voter, election)
        eligible, reason = result.eligible, result.reason
    else:
        eligible, reason = False, NO_VOTER_PRIVILEGES_REASON

    now = timezone.now()
    return JsonResponse(
        {
            "ok": True,
            "election_id": election.id,
            "status": str(current_status(election=election, now=now)),
            "voting_open": is_voting_open(election=election, now=now),
            "can_vote": voter.can_vote,
            "eligible": eligible,
            "reason": reason,
            "has_voted": elections_services.has_voted(election=election, user_id=voter.user_id),
        }
    )


@require_POST
def election_vote_submit(request: HttpRequest, election_id: int) -> JsonResponse:
    election = _get_election(election_id)
    voter = voter_profile_for_user(request.user)
    if voter is None:
        return _not_authenticated_response()

    try:
        data = _json_body(request)
    except ValueError as exc:
        return JsonResponse({"ok": False, "error": str(exc), "code": "invalid_request"}, status=400)

    admin_override = bool(data.get("admin_override"))
    if admin_override and not is_election_admin(request.user):
        return JsonResponse(
            {"ok": False, "error": "Only election administrators may override eligibility.", "code": "forbidden"},
            status=403,
        )

    if not access_code_matches(
        election=election,
        access_code=str(data.get("access_code") or "").strip() or None,
    ):
        return JsonResponse(
            {"ok": False, "error": "Invalid access code for this private election.", "code": "invalid_access_code"},
            status=403,
        )

    try:
        selections = parse_selections(data.get("selections"))
        receipt = submit_ballot(
            election=election,
            voter=voter,
            selections=selections,
            admin_override=admin_override,
        )
    except ElectionError as exc:
        return _election_error_response(exc)

    voter_email = str(getattr(request.user, "email", "") or "").strip()
    if voter_email:
        elections_services.send_vote_receipt_email(
            election=election,
            receipt=receipt,
            email=voter_email,
            voter_name=request.user.get_full_name() or request.user.get_username(),
        )

    return JsonResponse(
        {
            "ok": True,
            "election_id": receipt.election_id,
            "ballot_id": str(receipt.ballot_id),
            "selections": {
                position: selection.candidate_id if isinstance(selection, Vote) else elections_services.ABSTAIN_WIRE_VALUE
                for position, selection in receipt.selections.items()
            },
            "first_candidate_id": receipt.first_candidate_id,
        }
    )
