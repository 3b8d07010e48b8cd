from __future__ import annotations

import logging

from django.conf import settings
from django.db import DatabaseError
from django.http import HttpResponse, JsonResponse
from django.views.decorators.http import require_GET

from core.permissions import operator_required, statistics_access_required, tally_admin_required
from core.tally_services import (
    build_ballot_analysis,
    build_ballot_analysis_dataset,
    build_ballot_counters,
    build_live_scores,
    build_live_scores_dataset,
    turnout_statistics,
)

logger = logging.getLogger(__name__)

EXPORT_CONTENT_TYPES: dict[str, str] = {
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "csv": "text/csv; charset=utf-8",
}


def _unavailable(what: str) -> JsonResponse:
    return JsonResponse({"ok": False, "error": f"{what} is unavailable right now."}, status=503)


@require_GET
@operator_required
def live_scores(request):
    try:
        payload = build_live_scores()
    except DatabaseError:
        logger.exception("Failed to load live scores")
        return _unavailable("Live scores")

    return JsonResponse({"ok": True, "poll_seconds": settings.LIVE_SCORES_POLL_SECONDS, **payload})


@require_GET
@operator_required
def ballot_counters(request):
    try:
        counters = build_ballot_counters()
    except DatabaseError:
        logger.exception("Failed to load ballot counters")
        return _unavailable("Ballot counters")

    return JsonResponse({"ok": True, "poll_seconds": settings.LIVE_SCORES_POLL_SECONDS, "counters": counters})


@require_GET
@tally_admin_required
def ballot_analysis(request):
    try:
        payload = build_ballot_analysis()
    except DatabaseError:
        logger.exception("Failed to load ballot analysis")
        return _unavailable("Ballot analysis")

    return JsonResponse({"ok": True, **payload})


def _export_format(request) -> str:
    return str(request.GET.get("format") or "xlsx").strip().lower()


def _export_response(dataset, *, export_format: str, filename: str) -> HttpResponse:
    response = HttpResponse(dataset.export(export_format), content_type=EXPORT_CONTENT_TYPES[export_format])
    response["Content-Disposition"] = f'attachment; filename="{filename}.{export_format}"'
    return response


def _unsupported_format(export_format: str) -> JsonResponse:
    return JsonResponse({"ok": False, "error": f"Unsupported export format: {export_format}"}, status=400)


@require_GET
@operator_required
def live_scores_export(request):
    export_format = _export_format(request)
    if export_format not in EXPORT_CONTENT_TYPES:
        return _unsupported_format(export_format)

    try:
        dataset = build_live_scores_dataset()
    except DatabaseError:
        logger.exception("Failed to build live scores export")
        return _unavailable("Live scores")

    return _export_response(dataset, export_format=export_format, filename=settings.LIVE_SCORES_EXPORT_FILENAME)


@require_GET
@tally_admin_required
def ballot_analysis_export(request):
    export_format = _export_format(request)
    if export_format not in EXPORT_CONTENT_TYPES:
        return _unsupported_format(export_format)

    try:
        dataset = build_ballot_analysis_dataset()
    except DatabaseError:
        logger.exception("Failed to build ballot analysis export")
        return _unavailable("Ballot analysis")

    return _export_response(dataset, export_format=export_format, filename=settings.TALLY_EXPORT_FILENAME)


@require_GET
@statistics_access_required
def turnout(request):
    try:
        stats = turnout_statistics()
    except DatabaseError:
        logger.exception("Failed to load turnout statistics")
        return _unavailable("Turnout statistics")

    return JsonResponse({"ok": True, **stats})
