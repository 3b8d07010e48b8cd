from __future__ import annotations

from io import StringIO
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import TestCase
from django.urls import reverse

from core.models import Candidate, CandidateList, OperatorProfile
from core.tally_services import ScoreDrift, post_ballot
from core.tests.tally_fixtures import make_candidate


class ReconcileScoresCommandTests(TestCase):
    def setUp(self) -> None:
        super().setUp()
        candidate_list = CandidateList.objects.create(name="Unity", order=1)
        self.a = make_candidate("Alice", candidate_list=candidate_list, order=1)
        self.b = make_candidate("Bassam", candidate_list=candidate_list, order=2)
        post_ballot(
            kind="valid",
            checked_candidate_ids=[self.a.id],
            counting_right=OperatorProfile.CountingRight.male,
        )
        Candidate.objects.filter(pk=self.b.pk).update(score_from_female=3)

    def test_dry_run_reports_drift_without_writing(self) -> None:
        out = StringIO()

        call_command("reconcile_scores", "--dry-run", stdout=out)

        output = out.getvalue()
        self.assertIn(f"[dry-run] Candidate {self.b.id}: female 3 -> 0, male 0 -> 0", output)
        self.assertIn("[dry-run] Would repair 1 candidate(s).", output)
        self.b.refresh_from_db()
        self.assertEqual(self.b.score_from_female, 3)

    def test_repairs_drift(self) -> None:
        out = StringIO()

        call_command("reconcile_scores", stdout=out)

        self.assertIn("Repaired 1 candidate(s).", out.getvalue())
        self.assertIn("Verified: scores match the ballot ledger.", out.getvalue())
        self.a.refresh_from_db()
        self.b.refresh_from_db()
        self.assertEqual((self.a.score_from_female, self.a.score_from_male), (0, 1))
        self.assertEqual((self.b.score_from_female, self.b.score_from_male), (0, 0))

        out = StringIO()
        call_command("reconcile_scores", stdout=out)
        self.assertIn("Repaired 0 candidate(s).", out.getvalue())

    def test_reports_drift_that_reappears_after_repair(self) -> None:
        drift = ScoreDrift(candidate_id=self.b.id, stored=(3, 0), expected=(0, 0))
        out = StringIO()
        err = StringIO()

        with patch(
            "core.management.commands.reconcile_scores.reconcile_candidate_scores",
            side_effect=[[drift], [drift]],
        ) as reconcile:
            call_command("reconcile_scores", stdout=out, stderr=err)

        self.assertEqual(reconcile.call_args_list[1].kwargs, {"dry_run": True})
        self.assertIn("Repaired 1 candidate(s).", out.getvalue())
        self.assertNotIn("Verified", out.getvalue())
        self.assertIn("Scores drifted again for 1 candidate(s)", err.getvalue())


class ReconcileScoresAdminActionTests(TestCase):
    def setUp(self) -> None:
        super().setUp()
        candidate_list = CandidateList.objects.create(name="Unity", order=1)
        self.a = make_candidate("Alice", candidate_list=candidate_list, order=1, male=5)
        self.b = make_candidate("Bassam", candidate_list=candidate_list, order=2, female=3)
        self.admin = get_user_model().objects.create_superuser(username="root", password="pw", email="root@example.org")

    def test_action_only_reconciles_selected_candidates(self) -> None:
        self.client.force_login(self.admin)

        resp = self.client.post(
            reverse("admin:core_candidate_changelist"),
            {"action": "reconcile_scores", "_selected_action": [str(self.b.pk)]},
        )

        self.assertEqual(resp.status_code, 302)
        self.a.refresh_from_db()
        self.b.refresh_from_db()
        self.assertEqual((self.a.score_from_female, self.a.score_from_male), (0, 5))
        self.assertEqual((self.b.score_from_female, self.b.score_from_male), (0, 0))
