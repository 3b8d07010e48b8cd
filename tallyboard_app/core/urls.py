from django.urls import path

from core import views_counting, views_operators, views_scores

urlpatterns = [
    path("counting/", views_counting.counting_home, name="counting"),
    path("counting/toggle/", views_counting.counting_toggle, name="counting-toggle"),
    path("counting/list/", views_counting.counting_list, name="counting-list"),
    path("counting/post/", views_counting.counting_post_valid, name="counting-post"),
    path("counting/blank/", views_counting.counting_post_blank, name="counting-blank"),
    path("counting/invalid/", views_counting.counting_post_invalid, name="counting-invalid"),
    path("counting/reset/", views_counting.counting_reset, name="counting-reset"),

    path("scores/live/", views_scores.live_scores, name="live-scores"),
    path("scores/live/export/", views_scores.live_scores_export, name="live-scores-export"),
    path("ballots/counters/", views_scores.ballot_counters, name="ballot-counters"),
    path("ballots/analysis/", views_scores.ballot_analysis, name="ballot-analysis"),
    path("ballots/analysis/export/", views_scores.ballot_analysis_export, name="ballot-analysis-export"),
    path("statistics/turnout/", views_scores.turnout, name="turnout"),

    path("admin-api/operators/", views_operators.operators, name="operators"),
    path("admin-api/operators/<int:user_id>/", views_operators.operator_detail, name="operator-detail"),
]
