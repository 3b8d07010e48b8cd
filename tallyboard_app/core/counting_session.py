from __future__ import annotations

from collections.abc import Iterable, MutableMapping

from core.models import Candidate, CandidateList
from core.tally_services import PostingResult, post_ballot

SESSION_KEY = "tally_counting"


class CountingSession:
    """Checkbox state for one operator at a counting station.

    The checked candidate ids live in the Django session so they survive page
    reloads and failed postings. The session is ``idle`` while nothing is
    checked and ``selecting`` otherwise.
    """

    IDLE = "idle"
    SELECTING = "selecting"

    def __init__(self, session: MutableMapping[str, object]) -> None:
        self._session = session

    @property
    def checked_ids(self) -> list[int]:
        data = self._session.get(SESSION_KEY)
        if not isinstance(data, dict):
            return []
        raw = data.get("checked")
        if not isinstance(raw, list):
            return []
        return sorted({int(v) for v in raw})

    @property
    def state(self) -> str:
        return self.SELECTING if self.checked_ids else self.IDLE

    def _store(self, checked: Iterable[int]) -> None:
        # Assigning a fresh dict marks a Django session as modified.
        self._session[SESSION_KEY] = {"checked": sorted({int(v) for v in checked})}

    def _require_candidate(self, candidate_id: int) -> int:
        cid = int(candidate_id)
        if not Candidate.objects.filter(pk=cid).exists():
            raise ValueError(f"Unknown candidate: {candidate_id}")
        return cid

    def check(self, candidate_id: int) -> None:
        cid = self._require_candidate(candidate_id)
        self._store([*self.checked_ids, cid])

    def uncheck(self, candidate_id: int) -> None:
        cid = self._require_candidate(candidate_id)
        self._store(v for v in self.checked_ids if v != cid)

    def toggle(self, candidate_id: int) -> bool:
        """Flip one checkbox; returns whether the candidate is now checked."""

        cid = self._require_candidate(candidate_id)
        if cid in self.checked_ids:
            self.uncheck(cid)
            return False
        self.check(cid)
        return True

    def set_all_in_list(self, list_id: int, checked: bool) -> None:
        if not CandidateList.objects.filter(pk=int(list_id)).exists():
            raise ValueError(f"Unknown candidate list: {list_id}")

        list_candidate_ids = set(
            Candidate.objects.filter(candidate_list_id=int(list_id)).values_list("id", flat=True)
        )
        current = set(self.checked_ids)
        if checked:
            self._store(current | list_candidate_ids)
        else:
            self._store(current - list_candidate_ids)

    def reset(self) -> None:
        self._store([])

    def post(self, kind: str, *, counting_right: str | None) -> PostingResult:
        # Errors propagate with the checkboxes untouched so the operator can retry.
        result = post_ballot(
            kind=kind,
            checked_candidate_ids=self.checked_ids,
            counting_right=counting_right,
        )
        self.reset()
        return result

    def as_dict(self) -> dict[str, object]:
        return {"state": self.state, "checked": self.checked_ids}
