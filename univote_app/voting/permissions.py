from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from django.http import HttpRequest, HttpResponse, JsonResponse

VOTING_MANAGE_ELECTION = "voting.manage_election"
VOTING_CAST_VOTE = "voting.cast_vote"


P = ParamSpec("P")
R = TypeVar("R", bound=HttpResponse)


def json_login_required(view_func: Callable[P, R]) -> Callable[P, HttpResponse]:
    """Decorator for JSON endpoints: 401 JSON instead of a login redirect."""

    @wraps(view_func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> HttpResponse:
        request = args[0] if args else None
        if not isinstance(request, HttpRequest) or not request.user.is_authenticated:
            return JsonResponse(
                {"ok": False, "error": "Authentication required.", "code": "not_authenticated"},
                status=401,
            )
        return view_func(*args, **kwargs)

    return wrapper


def json_permission_required(permission: str) -> Callable[[Callable[P, R]], Callable[P, HttpResponse]]:
    """Decorator for JSON endpoints that require a single Django permission.

    This returns a JSON 403 response instead of redirecting or rendering HTML.
    """

    def decorator(view_func: Callable[P, R]) -> Callable[P, HttpResponse]:
        @json_login_required
        @wraps(view_func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> HttpResponse:
            request = args[0]
            if not _has_permission(user=request.user, permission=permission):
                return JsonResponse({"ok": False, "error": "Permission denied.", "code": "forbidden"}, status=403)
            return view_func(*args, **kwargs)

        return wrapper

    return decorator


def is_election_admin(user: object) -> bool:
    return _has_permission(user=user, permission=VOTING_MANAGE_ELECTION)


def _has_permission(*, user: object, permission: str) -> bool:
    try:
        return bool(user.has_perm(permission))
    except Exception:
        # Tests may pass user-like stubs.
        return False
