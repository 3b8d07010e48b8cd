from __future__ import annotations

import json
import logging

from django.conf import settings
from django.db import DatabaseError
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from core.counting_session import CountingSession
from core.permissions import counting_right_for_user, counting_right_required
from core.tally import BALLOT_TYPE_BLANK, BALLOT_TYPE_INVALID, BALLOT_TYPE_VALID
from core.tally_services import (
    CountingRightError,
    EmptyBallotError,
    LedgerWriteError,
    TallyError,
    build_counting_roster,
    build_live_scores,
    source_for_counting_right,
)

logger = logging.getLogger(__name__)


def _parse_payload(request) -> dict[str, object]:
    if request.content_type and request.content_type.startswith("application/json"):
        raw = request.body.decode("utf-8") if request.body else "{}"
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("Expected a JSON object.")
        return data
    return {key: request.POST.get(key) for key in request.POST}


def _parse_int(data: dict[str, object], key: str) -> int:
    value = data.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValueError(f"{key} is required")
    if isinstance(value, bool):
        raise ValueError(f"{key} must be an integer")
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{key} must be an integer") from exc


def _parse_bool(data: dict[str, object], key: str) -> bool:
    value = data.get(key)
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


def _counting_state(request) -> dict[str, object]:
    session = CountingSession(request.session)
    source = source_for_counting_right(counting_right_for_user(request.user))
    return {
        "ok": True,
        "session": session.as_dict(),
        "source": source,
        "lists": build_counting_roster(),
        "scores": build_live_scores(source=source),
        "poll_seconds": settings.LIVE_SCORES_POLL_SECONDS,
    }


def _counting_unavailable(session: CountingSession) -> JsonResponse:
    return JsonResponse(
        {"ok": False, "error": "Counting data is unavailable.", "session": session.as_dict()},
        status=503,
    )


@require_GET
@counting_right_required
def counting_home(request):
    try:
        return JsonResponse(_counting_state(request))
    except DatabaseError:
        logger.exception("Failed to load counting state user=%s", request.user.get_username())
        return JsonResponse({"ok": False, "error": "Counting data is unavailable."}, status=503)


@require_POST
@counting_right_required
def counting_toggle(request):
    try:
        candidate_id = _parse_int(_parse_payload(request), "candidate_id")
    except (ValueError, json.JSONDecodeError) as exc:
        return JsonResponse({"ok": False, "error": str(exc)}, status=400)

    session = CountingSession(request.session)
    try:
        checked = session.toggle(candidate_id)
    except ValueError as exc:
        return JsonResponse({"ok": False, "error": str(exc)}, status=404)
    except DatabaseError:
        logger.exception("Failed to toggle candidate_id=%s", candidate_id)
        return _counting_unavailable(session)

    return JsonResponse({"ok": True, "candidate_id": candidate_id, "checked": checked, "session": session.as_dict()})


@require_POST
@counting_right_required
def counting_list(request):
    try:
        data = _parse_payload(request)
        list_id = _parse_int(data, "list_id")
    except (ValueError, json.JSONDecodeError) as exc:
        return JsonResponse({"ok": False, "error": str(exc)}, status=400)

    session = CountingSession(request.session)
    try:
        session.set_all_in_list(list_id, _parse_bool(data, "checked"))
    except ValueError as exc:
        return JsonResponse({"ok": False, "error": str(exc)}, status=404)
    except DatabaseError:
        logger.exception("Failed to update list_id=%s", list_id)
        return _counting_unavailable(session)

    return JsonResponse({"ok": True, "list_id": list_id, "session": session.as_dict()})


def _post_ballot(request, *, kind: str):
    session = CountingSession(request.session)
    try:
        result = session.post(kind, counting_right=counting_right_for_user(request.user))
    except CountingRightError as exc:
        return JsonResponse({"ok": False, "error": str(exc)}, status=403)
    except EmptyBallotError as exc:
        return JsonResponse({"ok": False, "error": str(exc), "session": session.as_dict()}, status=400)
    except LedgerWriteError as exc:
        return JsonResponse({"ok": False, "error": str(exc), "session": session.as_dict()}, status=503)
    except TallyError as exc:
        return JsonResponse({"ok": False, "error": str(exc), "session": session.as_dict()}, status=409)
    except DatabaseError:
        logger.exception("Failed to post ballot kind=%s user=%s", kind, request.user.get_username())
        return _counting_unavailable(session)

    payload: dict[str, object] = {
        "ok": True,
        "ballot_id": result.ballot_id,
        "ballot_type": result.kind,
        "ballot_source": result.source,
        "votes": {str(line.candidate_id): line.vote for line in result.lines},
        "incremented": result.incremented_ids,
        "scores_updated": result.scores_updated,
        "session": session.as_dict(),
    }
    if result.warning:
        payload["warning"] = result.warning
    return JsonResponse(payload)


@require_POST
@counting_right_required
def counting_post_valid(request):
    return _post_ballot(request, kind=BALLOT_TYPE_VALID)


@require_POST
@counting_right_required
def counting_post_blank(request):
    return _post_ballot(request, kind=BALLOT_TYPE_BLANK)


@require_POST
@counting_right_required
def counting_post_invalid(request):
    return _post_ballot(request, kind=BALLOT_TYPE_INVALID)


@require_POST
@counting_right_required
def counting_reset(request):
    session = CountingSession(request.session)
    session.reset()
    return JsonResponse({"ok": True, "session": session.as_dict()})
