"""Ballot tallying over a point-in-time snapshot of the ledger.

Everything here is pure: callers load ballot lines and the candidate roster
and pass them in. The side-effecting posting operation lives in
``core.tally_services``.
"""

from __future__ import annotations

import datetime
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

NO_DATA = "-"

BALLOT_TYPE_VALID = "valid"
BALLOT_TYPE_BLANK = "blank"
BALLOT_TYPE_INVALID = "invalid"
BALLOT_TYPES: tuple[str, ...] = (BALLOT_TYPE_VALID, BALLOT_TYPE_BLANK, BALLOT_TYPE_INVALID)

SOURCE_MALE = "male"
SOURCE_FEMALE = "female"
SOURCES: tuple[str, ...] = (SOURCE_MALE, SOURCE_FEMALE)

STATUS_VALID = "Valid"
STATUS_INVALID = "Invalid"
STATUS_BLANK = "Blank"


@dataclass(frozen=True)
class BallotLineRow:
    ballot_id: int
    candidate_id: int
    vote: int
    ballot_type: str
    ballot_source: str
    post_date: datetime.datetime | None = None

    @classmethod
    def from_mapping(cls, row: Mapping[str, object]) -> BallotLineRow:
        return cls(
            ballot_id=int(row["ballot_id"]),
            candidate_id=int(row["candidate_id"]),
            vote=int(row.get("vote") or 0),
            ballot_type=str(row.get("ballot_type") or ""),
            ballot_source=str(row.get("ballot_source") or ""),
            post_date=row.get("post_date"),  # type: ignore[arg-type]
        )


@dataclass(frozen=True)
class CandidateScore:
    id: int
    full_name: str
    list_id: int
    list_name: str
    list_order: int
    candidate_order: int
    score_from_female: int
    score_from_male: int
    position: str = ""

    @property
    def total(self) -> int:
        return int(self.score_from_female or 0) + int(self.score_from_male or 0)

    def score_for_source(self, source: str) -> int:
        if source == SOURCE_FEMALE:
            return int(self.score_from_female or 0)
        if source == SOURCE_MALE:
            return int(self.score_from_male or 0)
        raise ValueError(f"unknown ballot source: {source!r}")


@dataclass(frozen=True)
class ClassifiedBallot:
    ballot_id: int
    ballot_type: str
    ballot_source: str
    post_date: datetime.datetime | None
    is_valid: bool
    is_blank: bool
    candidate_votes: dict[int, int | str] = field(default_factory=dict)

    @property
    def status(self) -> str:
        # Blank wins over invalid: vote content drives blankness, type drives validity.
        if self.is_blank:
            return STATUS_BLANK
        if not self.is_valid:
            return STATUS_INVALID
        return STATUS_VALID


@dataclass(frozen=True)
class BucketCount:
    total: int = 0
    male: int = 0
    female: int = 0


@dataclass(frozen=True)
class BallotCounters:
    valid: BucketCount
    invalid: BucketCount
    blank: BucketCount

    @property
    def total(self) -> int:
        return self.valid.total + self.invalid.total + self.blank.total

    def percentage(self, bucket: str) -> int:
        counts = {"valid": self.valid, "invalid": self.invalid, "blank": self.blank}
        return percentage(counts[bucket].total, self.total)

    def as_dict(self) -> dict[str, object]:
        out: dict[str, object] = {"total": self.total}
        for name in ("valid", "invalid", "blank"):
            bucket: BucketCount = getattr(self, name)
            out[name] = {
                "total": bucket.total,
                "male": bucket.male,
                "female": bucket.female,
                "percent": self.percentage(name),
            }
        return out


@dataclass(frozen=True)
class ListStanding:
    list_id: int
    list_name: str
    list_order: int
    candidates: list[CandidateScore]


def percentage(part: int, whole: int) -> int:
    if whole <= 0 or part <= 0:
        return 0
    # Half-up rounding, so 12.5 shows as 13.
    return (part * 200 + whole) // (whole * 2)


def group_ballot_lines(lines: Iterable[BallotLineRow]) -> dict[int, list[BallotLineRow]]:
    groups: dict[int, list[BallotLineRow]] = {}
    for line in lines:
        groups.setdefault(line.ballot_id, []).append(line)
    return groups


def classify_ballots(
    lines: Iterable[BallotLineRow],
    *,
    candidate_ids: Sequence[int],
) -> list[ClassifiedBallot]:
    """Collapse ballot lines into one row per ballot.

    Every roster candidate gets a display value: the recorded vote, or
    ``NO_DATA`` when the ballot has no line for that candidate (for example a
    ballot posted before the candidate was added).
    """

    classified: list[ClassifiedBallot] = []
    for ballot_id, group in group_ballot_lines(lines).items():
        first = group[0]
        candidate_votes: dict[int, int | str] = {cid: NO_DATA for cid in candidate_ids}
        is_blank = True
        for line in group:
            candidate_votes[line.candidate_id] = line.vote
            if line.vote != 0:
                is_blank = False

        classified.append(
            ClassifiedBallot(
                ballot_id=ballot_id,
                ballot_type=first.ballot_type,
                ballot_source=first.ballot_source,
                post_date=first.post_date,
                is_valid=first.ballot_type == BALLOT_TYPE_VALID,
                is_blank=is_blank,
                candidate_votes=candidate_votes,
            )
        )
    return classified


def count_ballots(ballots: Iterable[ClassifiedBallot]) -> BallotCounters:
    buckets: dict[str, dict[str, set[int]]] = {
        status: {"total": set(), SOURCE_MALE: set(), SOURCE_FEMALE: set()}
        for status in (STATUS_VALID, STATUS_INVALID, STATUS_BLANK)
    }
    for ballot in ballots:
        bucket = buckets[ballot.status]
        bucket["total"].add(ballot.ballot_id)
        if ballot.ballot_source in (SOURCE_MALE, SOURCE_FEMALE):
            bucket[ballot.ballot_source].add(ballot.ballot_id)

    def _count(status: str) -> BucketCount:
        bucket = buckets[status]
        return BucketCount(
            total=len(bucket["total"]),
            male=len(bucket[SOURCE_MALE]),
            female=len(bucket[SOURCE_FEMALE]),
        )

    return BallotCounters(
        valid=_count(STATUS_VALID),
        invalid=_count(STATUS_INVALID),
        blank=_count(STATUS_BLANK),
    )


def ballot_counters(lines: Iterable[BallotLineRow]) -> BallotCounters:
    return count_ballots(classify_ballots(lines, candidate_ids=()))


def rank_candidates(
    candidates: Iterable[CandidateScore],
    *,
    source: str | None = None,
) -> list[CandidateScore]:
    """Order candidates by descending score; ties keep their input order."""

    if source is None:
        return sorted(candidates, key=lambda c: -c.total)
    return sorted(candidates, key=lambda c: -c.score_for_source(source))


def live_standings(
    candidates: Iterable[CandidateScore],
    *,
    source: str | None = None,
) -> list[ListStanding]:
    """Group candidates by list, lists by ``list_order``, candidates by score.

    With ``source`` set, candidates are ranked on that station's score only
    (the counting screen shows each station its own tally).
    """

    by_list: dict[int, list[CandidateScore]] = {}
    list_meta: dict[int, tuple[str, int]] = {}
    for candidate in candidates:
        by_list.setdefault(candidate.list_id, []).append(candidate)
        list_meta.setdefault(candidate.list_id, (candidate.list_name, candidate.list_order))

    list_ids = sorted(by_list, key=lambda lid: list_meta[lid][1])
    return [
        ListStanding(
            list_id=lid,
            list_name=list_meta[lid][0],
            list_order=list_meta[lid][1],
            candidates=rank_candidates(by_list[lid], source=source),
        )
        for lid in list_ids
    ]


def counting_order(candidates: Iterable[CandidateScore]) -> list[ListStanding]:
    """Group candidates for the counting screen: list order, then candidate order."""

    by_list: dict[int, list[CandidateScore]] = {}
    for candidate in candidates:
        by_list.setdefault(candidate.list_id, []).append(candidate)

    standings = [
        ListStanding(
            list_id=lid,
            list_name=members[0].list_name,
            list_order=members[0].list_order,
            candidates=sorted(members, key=lambda c: c.candidate_order),
        )
        for lid, members in by_list.items()
    ]
    return sorted(standings, key=lambda s: s.list_order)


def score_summary(candidates: Sequence[CandidateScore]) -> dict[str, int]:
    max_score = max((c.total for c in candidates), default=0)
    return {
        "max_score": max(max_score, 1),
        "total_votes": sum(c.total for c in candidates),
    }


def replay_scores(
    lines: Iterable[BallotLineRow],
    *,
    candidate_ids: Iterable[int] = (),
) -> dict[int, tuple[int, int]]:
    """Recompute (score_from_female, score_from_male) per candidate from the ledger.

    Only marks on ballots typed ``valid`` count; blank and invalid postings
    never contributed to the cumulative scores.
    """

    scores: dict[int, list[int]] = {int(cid): [0, 0] for cid in candidate_ids}
    for line in lines:
        entry = scores.setdefault(line.candidate_id, [0, 0])
        if line.ballot_type != BALLOT_TYPE_VALID or line.vote != 1:
            continue
        if line.ballot_source == SOURCE_FEMALE:
            entry[0] += 1
        elif line.ballot_source == SOURCE_MALE:
            entry[1] += 1
    return {cid: (female, male) for cid, (female, male) in scores.items()}


def build_ballot_lines(
    *,
    kind: str,
    roster_ids: Sequence[int],
    checked_ids: Iterable[int],
    ballot_id: int,
    source: str,
    post_date: datetime.datetime | None,
) -> list[BallotLineRow]:
    """Fan one ballot out into exactly one line per roster candidate.

    Checked ids that are not on the roster are ignored. A blank ballot records
    a zero for everyone regardless of what was checked.
    """

    if kind not in BALLOT_TYPES:
        raise ValueError(f"unknown ballot kind: {kind!r}")
    if source not in SOURCES:
        raise ValueError(f"unknown ballot source: {source!r}")

    checked = {int(cid) for cid in checked_ids}
    lines: list[BallotLineRow] = []
    for cid in roster_ids:
        vote = 0 if kind == BALLOT_TYPE_BLANK else int(int(cid) in checked)
        lines.append(
            BallotLineRow(
                ballot_id=ballot_id,
                candidate_id=int(cid),
                vote=vote,
                ballot_type=kind,
                ballot_source=source,
                post_date=post_date,
            )
        )
    return lines


def turnout_rate(*, voted: int, registered: int) -> int:
    return percentage(voted, registered)
