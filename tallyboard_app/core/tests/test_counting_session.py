from __future__ import annotations

from unittest.mock import patch

from django.db import DatabaseError
from django.test import TestCase

from core.counting_session import SESSION_KEY, CountingSession
from core.models import BallotLine, CandidateList, OperatorProfile
from core.tally_services import CountingRightError, EmptyBallotError, LedgerWriteError
from core.tests.tally_fixtures import make_candidate

FEMALE = OperatorProfile.CountingRight.female


class CountingSessionTests(TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.list1 = CandidateList.objects.create(name="Unity", order=1)
        self.list2 = CandidateList.objects.create(name="Renewal", order=2)
        self.a = make_candidate("Alice", candidate_list=self.list1, order=1)
        self.b = make_candidate("Bassam", candidate_list=self.list1, order=2)
        self.c = make_candidate("Carla", candidate_list=self.list2, order=1)
        self.store: dict[str, object] = {}
        self.session = CountingSession(self.store)

    def test_starts_idle(self) -> None:
        self.assertEqual(self.session.state, CountingSession.IDLE)
        self.assertEqual(self.session.checked_ids, [])

    def test_toggle_moves_between_idle_and_selecting(self) -> None:
        self.assertTrue(self.session.toggle(self.a.id))
        self.assertEqual(self.session.state, CountingSession.SELECTING)
        self.assertEqual(self.store[SESSION_KEY], {"checked": [self.a.id]})

        self.assertFalse(self.session.toggle(self.a.id))
        self.assertEqual(self.session.state, CountingSession.IDLE)

    def test_check_and_uncheck_are_idempotent(self) -> None:
        self.session.check(self.a.id)
        self.session.check(self.a.id)
        self.assertEqual(self.session.checked_ids, [self.a.id])

        self.session.uncheck(self.b.id)
        self.assertEqual(self.session.checked_ids, [self.a.id])

    def test_unknown_candidate_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            self.session.toggle(999999)
        self.assertEqual(self.session.state, CountingSession.IDLE)

    def test_set_all_in_list(self) -> None:
        self.session.check(self.c.id)

        self.session.set_all_in_list(self.list1.id, True)
        self.assertEqual(self.session.checked_ids, sorted([self.a.id, self.b.id, self.c.id]))

        self.session.set_all_in_list(self.list1.id, False)
        self.assertEqual(self.session.checked_ids, [self.c.id])

        with self.assertRaises(ValueError):
            self.session.set_all_in_list(999999, True)

    def test_reset_clears_without_writing(self) -> None:
        self.session.check(self.a.id)

        self.session.reset()

        self.assertEqual(self.session.state, CountingSession.IDLE)
        self.assertFalse(BallotLine.objects.exists())

    def test_successful_post_returns_to_idle(self) -> None:
        self.session.check(self.a.id)

        result = self.session.post("valid", counting_right=FEMALE)

        self.assertEqual(self.session.state, CountingSession.IDLE)
        self.assertEqual(BallotLine.objects.filter(ballot_id=result.ballot_id).count(), 3)

    def test_blank_post_clears_checks(self) -> None:
        self.session.check(self.b.id)

        self.session.post("blank", counting_right=FEMALE)

        self.assertEqual(self.session.checked_ids, [])

    def test_failed_post_keeps_checks_for_retry(self) -> None:
        self.session.check(self.a.id)
        self.session.check(self.c.id)

        with patch.object(BallotLine.objects, "bulk_create", side_effect=DatabaseError("connection lost")):
            with self.assertRaises(LedgerWriteError):
                self.session.post("valid", counting_right=FEMALE)

        self.assertEqual(self.session.state, CountingSession.SELECTING)
        self.assertEqual(self.session.checked_ids, sorted([self.a.id, self.c.id]))

        self.session.post("valid", counting_right=FEMALE)
        self.assertEqual(self.session.state, CountingSession.IDLE)

    def test_rejected_post_keeps_state(self) -> None:
        with self.assertRaises(EmptyBallotError):
            self.session.post("valid", counting_right=FEMALE)

        self.session.check(self.a.id)
        with self.assertRaises(CountingRightError):
            self.session.post("valid", counting_right=None)
        self.assertEqual(self.session.checked_ids, [self.a.id])

    def test_ignores_corrupt_session_data(self) -> None:
        self.store[SESSION_KEY] = "garbage"

        self.assertEqual(self.session.checked_ids, [])
        self.assertEqual(self.session.as_dict(), {"state": "idle", "checked": []})
