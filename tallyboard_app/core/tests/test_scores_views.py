from __future__ import annotations

import datetime
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from core.models import BallotLine, Candidate, CandidateList, OperatorProfile, Voter
from core.tally_services import post_ballot
from core.tests.tally_fixtures import make_candidate, make_operator

FEMALE = OperatorProfile.CountingRight.female
MALE = OperatorProfile.CountingRight.male


class ScoresViewsTests(TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.list1 = CandidateList.objects.create(name="Unity", order=1)
        self.list2 = CandidateList.objects.create(name="Renewal", order=2)
        self.x = make_candidate("Xavier", candidate_list=self.list1, order=1, female=4, male=6)
        self.y = make_candidate("Yara", candidate_list=self.list1, order=2, female=30)
        self.z = make_candidate("Zein", candidate_list=self.list2, order=1, male=20)
        self.admin = make_operator("chief", role=OperatorProfile.Role.admin)
        self.viewer = make_operator("viewer")

    def test_live_scores_ranks_lists_and_candidates(self) -> None:
        self.client.force_login(self.viewer)

        resp = self.client.get(reverse("live-scores"))

        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual([lst["name"] for lst in data["lists"]], ["Unity", "Renewal"])
        self.assertEqual([c["full_name"] for c in data["lists"][0]["candidates"]], ["Yara", "Xavier"])
        self.assertEqual([c["full_name"] for c in data["ranking"]], ["Yara", "Zein", "Xavier"])
        self.assertEqual(data["max_score"], 30)
        self.assertEqual(data["total_votes"], 60)
        self.assertEqual(data["lists"][0]["candidates"][1]["total"], 10)
        self.assertIn("poll_seconds", data)

    @override_settings(LIVE_SCORES_POLL_SECONDS=5)
    def test_live_scores_advertises_poll_interval(self) -> None:
        self.client.force_login(self.viewer)

        self.assertEqual(self.client.get(reverse("live-scores")).json()["poll_seconds"], 5)

    def test_live_scores_requires_operator_profile(self) -> None:
        stranger = get_user_model().objects.create_user(username="stranger", password="pw")
        self.client.force_login(stranger)

        self.assertEqual(self.client.get(reverse("live-scores")).status_code, 403)

    def test_live_scores_database_error_returns_503(self) -> None:
        self.client.force_login(self.viewer)

        with patch("core.views_scores.build_live_scores", side_effect=DatabaseError("down")):
            resp = self.client.get(reverse("live-scores"))

        self.assertEqual(resp.status_code, 503)
        self.assertFalse(resp.json()["ok"])

    def test_ballot_counters(self) -> None:
        post_ballot(kind="valid", checked_candidate_ids=[self.x.id], counting_right=FEMALE)
        post_ballot(kind="blank", checked_candidate_ids=[], counting_right=MALE)
        post_ballot(kind="invalid", checked_candidate_ids=[self.z.id], counting_right=MALE)
        self.client.force_login(self.viewer)

        counters = self.client.get(reverse("ballot-counters")).json()["counters"]

        self.assertEqual(counters["total"], 3)
        self.assertEqual(counters["valid"], {"total": 1, "male": 0, "female": 1, "percent": 33})
        self.assertEqual(counters["blank"]["male"], 1)
        self.assertEqual(counters["invalid"]["male"], 1)

    def test_ballot_analysis_is_admin_only(self) -> None:
        self.client.force_login(self.viewer)

        self.assertEqual(self.client.get(reverse("ballot-analysis")).status_code, 403)
        self.assertEqual(self.client.get(reverse("ballot-analysis-export")).status_code, 403)

    def test_ballot_analysis_lists_newest_first_with_no_data_marks(self) -> None:
        now = timezone.now()
        first = post_ballot(
            kind="valid",
            checked_candidate_ids=[self.x.id],
            counting_right=FEMALE,
            post_date=now - datetime.timedelta(minutes=10),
        )
        late_candidate = make_candidate("Late", candidate_list=self.list2, order=2)
        second = post_ballot(kind="blank", checked_candidate_ids=[], counting_right=MALE, post_date=now)
        self.client.force_login(self.admin)

        data = self.client.get(reverse("ballot-analysis")).json()

        self.assertEqual([c["full_name"] for c in data["candidates"]], ["Xavier", "Yara", "Zein", "Late"])
        self.assertEqual([b["ballot_id"] for b in data["ballots"]], [second.ballot_id, first.ballot_id])
        self.assertEqual(data["ballots"][0]["status"], "Blank")
        self.assertEqual(data["ballots"][1]["status"], "Valid")
        self.assertEqual(data["ballots"][1]["votes"], [1, 0, 0, "-"])
        self.assertEqual(data["ballots"][0]["votes"][3], 0)
        self.assertEqual(data["counters"]["total"], 2)
        self.assertTrue(BallotLine.objects.filter(candidate=late_candidate).exists())

    def test_ballot_analysis_export_csv(self) -> None:
        post_ballot(kind="valid", checked_candidate_ids=[self.y.id], counting_right=FEMALE)
        self.client.force_login(self.admin)

        resp = self.client.get(reverse("ballot-analysis-export"), {"format": "csv"})

        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp["Content-Type"].startswith("text/csv"))
        self.assertIn('filename="BallotAnalysis.csv"', resp["Content-Disposition"])
        rows = resp.content.decode("utf-8").splitlines()
        self.assertEqual(rows[0], "Ballot #,Xavier,Yara,Zein,Timestamp,Status")
        self.assertTrue(rows[1].startswith("1,0,1,0,"))
        self.assertTrue(rows[1].endswith(",Valid"))

    def test_live_scores_export_csv_ranks_by_total(self) -> None:
        Candidate.objects.filter(pk=self.y.pk).update(position="President")
        make_candidate("Tala", candidate_list=self.list2, order=2, male=10)
        self.client.force_login(self.viewer)

        resp = self.client.get(reverse("live-scores-export"), {"format": "csv"})

        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp["Content-Type"].startswith("text/csv"))
        self.assertIn('filename="LiveScores.csv"', resp["Content-Disposition"])
        rows = resp.content.decode("utf-8").splitlines()
        self.assertEqual(rows[0], "Candidate,Position,List,Female Votes,Male Votes,Total")
        self.assertEqual(
            rows[1:],
            [
                "Yara,President,Unity,30,0,30",
                "Zein,,Renewal,0,20,20",
                # Xavier and Tala tie on 10; roster order is kept.
                "Xavier,,Unity,4,6,10",
                "Tala,,Renewal,0,10,10",
            ],
        )

    def test_live_scores_export_xlsx_and_unknown_format(self) -> None:
        self.client.force_login(self.viewer)

        resp = self.client.get(reverse("live-scores-export"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(
            resp["Content-Type"],
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        )
        self.assertTrue(resp.content.startswith(b"PK"))

        self.assertEqual(self.client.get(reverse("live-scores-export"), {"format": "pdf"}).status_code, 400)

    def test_live_scores_export_requires_operator_profile(self) -> None:
        stranger = get_user_model().objects.create_user(username="stranger", password="pw")
        self.client.force_login(stranger)

        self.assertEqual(self.client.get(reverse("live-scores-export")).status_code, 403)

    def test_ballot_analysis_export_xlsx(self) -> None:
        post_ballot(kind="blank", checked_candidate_ids=[], counting_right=FEMALE)
        self.client.force_login(self.admin)

        resp = self.client.get(reverse("ballot-analysis-export"))

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(
            resp["Content-Type"],
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        )
        self.assertTrue(resp.content.startswith(b"PK"))

    def test_ballot_analysis_export_rejects_unknown_format(self) -> None:
        self.client.force_login(self.admin)

        resp = self.client.get(reverse("ballot-analysis-export"), {"format": "pdf"})

        self.assertEqual(resp.status_code, 400)

    def test_turnout_requires_statistics_access(self) -> None:
        self.client.force_login(self.viewer)
        self.assertEqual(self.client.get(reverse("turnout")).status_code, 403)

        analyst = make_operator("analyst", statistics_access=OperatorProfile.Access.view)
        self.client.force_login(analyst)
        self.assertEqual(self.client.get(reverse("turnout")).status_code, 200)

    def test_turnout_statistics(self) -> None:
        Voter.objects.filter(full_name="Xavier").update(has_voted=True)
        Voter.objects.create(full_name="Hala", gender=Voter.Gender.female, has_voted=True)
        Voter.objects.create(full_name="Rima", gender=Voter.Gender.female)
        self.client.force_login(self.admin)

        data = self.client.get(reverse("turnout")).json()

        # Three male candidate voters plus two female voters.
        self.assertEqual(data["registered"], 5)
        self.assertEqual(data["voted"], 2)
        self.assertEqual(data["turnout_percent"], 40)
        self.assertEqual(data["male"], {"registered": 3, "voted": 1, "not_voted": 2, "turnout_percent": 33})
        self.assertEqual(data["female"], {"registered": 2, "voted": 1, "not_voted": 1, "turnout_percent": 50})


class HealthViewsTests(TestCase):
    def test_healthz_and_readyz(self) -> None:
        self.assertEqual(self.client.get("/healthz/").status_code, 200)
        self.assertEqual(self.client.get("/readyz/").content, b"ok")

    def test_readyz_reports_database_errors(self) -> None:
        with patch("core.views_health.BallotLine.objects.only", side_effect=DatabaseError("down")):
            resp = self.client.get("/readyz/")

        self.assertEqual(resp.status_code, 503)
