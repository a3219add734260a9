from __future__ import annotations

import logging

from django.db import DatabaseError, connection
from django.http import HttpRequest, JsonResponse
from django.views.decorators.http import require_GET

from voting.models import BallotEntry, Election

logger = logging.getLogger(__name__)


@require_GET
def healthz(_request: HttpRequest) -> JsonResponse:
    return JsonResponse({"status": "ok", "service": "univote"})


def _check_ledger() -> None:
    # Both queries touch the tables a ballot write needs; a missing migration fails here.
    Election.objects.only("id").exists()
    BallotEntry.objects.only("id").exists()


@require_GET
def readyz(_request: HttpRequest) -> JsonResponse:
    """Ready once the database answers and the election ledger tables are readable."""

    checks: dict[str, str] = {"database": "unknown", "ledger": "unknown"}
    try:
        connection.ensure_connection()
    except DatabaseError as exc:
        logger.error("readyz_failed check=database error=%s", exc)
        checks["database"] = "unavailable"
        return JsonResponse({"status": "not ready", "checks": checks}, status=503)
    checks["database"] = "ok"

    try:
        _check_ledger()
    except DatabaseError as exc:
        logger.error("readyz_failed check=ledger error=%s", exc)
        checks["ledger"] = "unavailable"
        return JsonResponse({"status": "not ready", "checks": checks}, status=503)
    checks["ledger"] = "ok"

    return JsonResponse({"status": "ready", "checks": checks})
