from __future__ import annotations

import json
import logging

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.http import JsonResponse
from django.views.decorators.http import require_http_methods

from core.models import OperatorProfile
from core.permissions import tally_admin_required

logger = logging.getLogger(__name__)

_CHOICE_FIELDS: dict[str, type] = {
    "role": OperatorProfile.Role,
    "vote_counting": OperatorProfile.CountingRight,
    "voters_list_access": OperatorProfile.Access,
    "statistics_access": OperatorProfile.Access,
}


def _normalize_str(value: object) -> str:
    return "" if value is None else str(value).strip()


def _parse_json_object(request) -> dict[str, object]:
    raw = request.body.decode("utf-8") if request.body else "{}"
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("Expected a JSON object.")
    return data


def _profile_fields(data: dict[str, object]) -> dict[str, str]:
    fields: dict[str, str] = {}
    for name, choices in _CHOICE_FIELDS.items():
        if name not in data:
            continue
        value = _normalize_str(data.get(name))
        if value not in choices.values:
            raise ValueError(f"Invalid {name}: {value!r}")
        fields[name] = value
    if "full_name" in data:
        fields["full_name"] = _normalize_str(data.get("full_name"))
    return fields


def _operator_payload(profile: OperatorProfile) -> dict[str, object]:
    user = profile.user
    return {
        "id": user.pk,
        "username": user.get_username(),
        "email": user.email,
        "full_name": profile.full_name,
        "role": profile.role,
        "vote_counting": profile.vote_counting,
        "voters_list_access": profile.voters_list_access,
        "statistics_access": profile.statistics_access,
        "created_at": profile.created_at.isoformat(),
    }


@require_http_methods(["GET", "POST"])
@tally_admin_required
def operators(request):
    if request.method == "GET":
        profiles = OperatorProfile.objects.select_related("user").order_by("user__username")
        return JsonResponse({"ok": True, "operators": [_operator_payload(p) for p in profiles]})

    try:
        data = _parse_json_object(request)
        fields = _profile_fields(data)
    except (ValueError, json.JSONDecodeError) as exc:
        return JsonResponse({"ok": False, "error": str(exc)}, status=400)

    username = _normalize_str(data.get("username"))
    password = _normalize_str(data.get("password"))
    if not username or not password:
        return JsonResponse({"ok": False, "error": "username and password are required"}, status=400)

    User = get_user_model()
    if User.objects.filter(username=username).exists():
        return JsonResponse({"ok": False, "error": "An operator with that username already exists."}, status=409)

    try:
        with transaction.atomic():
            user = User.objects.create_user(
                username=username,
                email=_normalize_str(data.get("email")),
                password=password,
            )
            profile = OperatorProfile.objects.create(user=user, **fields)
    except IntegrityError:
        return JsonResponse({"ok": False, "error": "An operator with that username already exists."}, status=409)

    logger.info(
        "Operator created username=%s role=%s vote_counting=%s by=%s",
        username,
        profile.role,
        profile.vote_counting,
        request.user.get_username(),
    )
    return JsonResponse({"ok": True, "operator": _operator_payload(profile)}, status=201)


@require_http_methods(["GET", "POST", "DELETE"])
@tally_admin_required
def operator_detail(request, user_id: int):
    profile = OperatorProfile.objects.select_related("user").filter(user_id=user_id).first()
    if profile is None:
        return JsonResponse({"ok": False, "error": "Operator not found."}, status=404)

    if request.method == "GET":
        return JsonResponse({"ok": True, "operator": _operator_payload(profile)})

    if request.method == "DELETE":
        if profile.user_id == request.user.pk:
            return JsonResponse({"ok": False, "error": "You cannot delete your own account."}, status=409)
        username = profile.user.get_username()
        profile.user.delete()
        logger.info("Operator deleted username=%s by=%s", username, request.user.get_username())
        return JsonResponse({"ok": True})

    try:
        data = _parse_json_object(request)
        fields = _profile_fields(data)
    except (ValueError, json.JSONDecodeError) as exc:
        return JsonResponse({"ok": False, "error": str(exc)}, status=400)

    if (
        profile.user_id == request.user.pk
        and fields.get("role", profile.role) != OperatorProfile.Role.admin
    ):
        return JsonResponse({"ok": False, "error": "You cannot remove your own admin role."}, status=409)

    with transaction.atomic():
        for name, value in fields.items():
            setattr(profile, name, value)
        if fields:
            profile.save(update_fields=[*fields, "updated_at"])

        user = profile.user
        user_fields: list[str] = []
        if "email" in data:
            user.email = _normalize_str(data.get("email"))
            user_fields.append("email")
        password = _normalize_str(data.get("password"))
        if password:
            user.set_password(password)
            user_fields.append("password")
        if user_fields:
            user.save(update_fields=user_fields)

    logger.info(
        "Operator updated username=%s fields=%s by=%s",
        profile.user.get_username(),
        sorted([*fields, *(["email"] if "email" in data else []), *(["password"] if password else [])]),
        request.user.get_username(),
    )
    return JsonResponse({"ok": True, "operator": _operator_payload(profile)})
