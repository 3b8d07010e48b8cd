from __future__ import annotations

import logging
from typing import override

from django.contrib import admin, messages

from core.tally_services import reconcile_candidate_scores

from .models import BallotLine, Candidate, CandidateList, OperatorProfile, Voter

logger = logging.getLogger(__name__)


@admin.register(Voter)
class VoterAdmin(admin.ModelAdmin):
    list_display = ("full_name", "gender", "has_voted", "voting_time")
    list_filter = ("gender", "has_voted")
    search_fields = ("full_name",)


class CandidateInline(admin.TabularInline):
    model = Candidate
    extra = 0
    fields = ("voter", "position", "candidate_order", "score_from_female", "score_from_male")
    readonly_fields = ("score_from_female", "score_from_male")
    autocomplete_fields = ("voter",)


@admin.register(CandidateList)
class CandidateListAdmin(admin.ModelAdmin):
    list_display = ("name", "order")
    ordering = ("order", "id")
    search_fields = ("name",)
    inlines = (CandidateInline,)


@admin.register(Candidate)
class CandidateAdmin(admin.ModelAdmin):
    list_display = ("full_name", "position", "candidate_list", "candidate_order", "score_from_female", "score_from_male")
    list_filter = ("candidate_list",)
    list_select_related = ("voter", "candidate_list")
    search_fields = ("voter__full_name", "candidate_list__name")
    autocomplete_fields = ("voter",)
    # Scores are a cache of the ballot ledger; the reconcile action rewrites them.
    readonly_fields = ("score_from_female", "score_from_male")
    actions = ("reconcile_scores",)

    @admin.action(description="Reconcile selected candidates' scores with the ballot ledger")
    def reconcile_scores(self, request, queryset) -> None:
        drifts = reconcile_candidate_scores(candidate_ids=list(queryset.values_list("id", flat=True)))
        if not drifts:
            self.message_user(request, "Scores already match the ballot ledger.", level=messages.SUCCESS)
            return

        logger.info("Admin reconciled scores for %d candidate(s) user=%s", len(drifts), request.user.get_username())
        self.message_user(
            request,
            f"Repaired scores for {len(drifts)} candidate(s).",
            level=messages.WARNING,
        )


@admin.register(BallotLine)
class BallotLineAdmin(admin.ModelAdmin):
    list_display = ("ballot_id", "candidate", "vote", "ballot_type", "ballot_source", "post_date")
    list_filter = ("ballot_type", "ballot_source")
    list_select_related = ("candidate__voter", "candidate__candidate_list")
    search_fields = ("=ballot_id",)
    date_hierarchy = "post_date"

    # The ledger is append-only; postings go through the counting screens.
    @override
    def has_add_permission(self, request) -> bool:
        return False

    @override
    def has_change_permission(self, request, obj=None) -> bool:
        return False

    @override
    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(OperatorProfile)
class OperatorProfileAdmin(admin.ModelAdmin):
    list_display = ("user", "full_name", "role", "vote_counting", "voters_list_access", "statistics_access")
    list_filter = ("role", "vote_counting")
    list_select_related = ("user",)
    search_fields = ("user__username", "full_name")
    raw_id_fields = ("user",)
