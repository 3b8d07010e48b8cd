from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from django.http import HttpRequest, HttpResponse, JsonResponse

from core.models import OperatorProfile

P = ParamSpec("P")
R = TypeVar("R", bound=HttpResponse)

COUNTING_RIGHTS: frozenset[str] = frozenset(
    {
        OperatorProfile.CountingRight.female.value,
        OperatorProfile.CountingRight.male.value,
    }
)


def operator_profile_for_user(user: object) -> OperatorProfile | None:
    if not getattr(user, "is_authenticated", False):
        return None
    try:
        return user.operator_profile  # type: ignore[attr-defined]
    except OperatorProfile.DoesNotExist:
        return None


def counting_right_for_user(user: object) -> str | None:
    profile = operator_profile_for_user(user)
    if profile is None:
        return None
    right = str(profile.vote_counting or "").strip()
    return right if right in COUNTING_RIGHTS else None


def is_tally_admin(user: object) -> bool:
    profile = operator_profile_for_user(user)
    return bool(profile is not None and profile.is_admin)


def _denied(message: str = "Permission denied.") -> JsonResponse:
    return JsonResponse({"ok": False, "error": message}, status=403)


def json_operator_required(check: Callable[[object], bool]) -> Callable[[Callable[P, R]], Callable[P, HttpResponse]]:
    """Decorator for JSON endpoints gated on the caller's operator profile.

    Returns a JSON 403 instead of redirecting to the login page, since these
    endpoints are called from scripts on the counting screens.
    """

    def decorator(view_func: Callable[P, R]) -> Callable[P, HttpResponse]:
        @wraps(view_func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> HttpResponse:
            if not args:
                return _denied()

            request = args[0]
            if not isinstance(request, HttpRequest):
                return _denied()

            user = getattr(request, "user", None)
            if not getattr(user, "is_authenticated", False):
                return _denied("Authentication required.")

            if not check(user):
                return _denied()

            return view_func(*args, **kwargs)

        return wrapper

    return decorator


def counting_right_required(view_func: Callable[P, R]) -> Callable[P, HttpResponse]:
    return json_operator_required(lambda user: counting_right_for_user(user) is not None)(view_func)


def tally_admin_required(view_func: Callable[P, R]) -> Callable[P, HttpResponse]:
    return json_operator_required(is_tally_admin)(view_func)


def operator_required(view_func: Callable[P, R]) -> Callable[P, HttpResponse]:
    return json_operator_required(lambda user: operator_profile_for_user(user) is not None)(view_func)


def has_statistics_access(user: object) -> bool:
    profile = operator_profile_for_user(user)
    if profile is None:
        return False
    return profile.is_admin or profile.statistics_access != OperatorProfile.Access.none


def statistics_access_required(view_func: Callable[P, R]) -> Callable[P, HttpResponse]:
    return json_operator_required(has_statistics_access)(view_func)
