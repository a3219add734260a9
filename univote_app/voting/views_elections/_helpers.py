"""Shared private helpers used across election view sub-modules."""

import json

from django.http import Http404, HttpRequest, JsonResponse

from voting.elections_services import (
    BallotValidationError,
    ElectionConflictError,
    ElectionError,
    ElectionStateError,
    ElectionStorageError,
    IncompleteBallotError,
    NotAuthenticatedError,
    NotEligibleError,
)
from voting.models import Election

# First match wins, so subclasses come before their bases.
_STATUS_BY_ERROR: tuple[tuple[type[ElectionError], int], ...] = (
    (NotAuthenticatedError, 401),
    (NotEligibleError, 403),
    (BallotValidationError, 400),
    (ElectionConflictError, 409),
    (ElectionStateError, 409),
    (ElectionStorageError, 503),
)


def _get_election(election_id: int, *, fields: list[str] | None = None) -> Election:
    """Load an election by PK or raise Http404."""
    qs = Election.objects.filter(pk=election_id)
    if fields:
        qs = qs.only(*fields)
    election = qs.first()
    if election is None:
        raise Http404
    return election


def _election_error_response(exc: ElectionError) -> JsonResponse:
    status = next((code for cls, code in _STATUS_BY_ERROR if isinstance(exc, cls)), 400)
    payload: dict[str, object] = {"ok": False, "error": str(exc), "code": exc.code}
    if isinstance(exc, IncompleteBallotError):
        payload["missing_positions"] = exc.missing_positions
    if isinstance(exc, NotEligibleError):
        payload["reason"] = exc.reason
    return JsonResponse(payload, status=status)


def _json_body(request: HttpRequest) -> dict[str, object]:
    raw = request.body.decode("utf-8") if request.body else "{}"
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    return data


def _actor(request: HttpRequest) -> str:
    user = getattr(request, "user", None)
    if user is None or not user.is_authenticated:
        return ""
    return str(user.get_username() or "")


def _not_authenticated_response() -> JsonResponse:
    return JsonResponse(
        {"ok": False, "error": "Authentication required.", "code": "not_authenticated"},
        status=401,
    )
