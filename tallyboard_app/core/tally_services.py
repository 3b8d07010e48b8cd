from __future__ import annotations

import datetime
import logging
from collections.abc import Iterable
from dataclasses import dataclass

from django.db import DatabaseError, transaction
from django.db.models import Count, F, Max, Q
from django.utils import timezone
from tablib import Dataset

from core.models import BallotLine, BallotSequence, Candidate, OperatorProfile, Voter
from core.tally import (
    BALLOT_TYPE_VALID,
    BALLOT_TYPES,
    SOURCE_FEMALE,
    SOURCE_MALE,
    BallotLineRow,
    CandidateScore,
    ballot_counters,
    build_ballot_lines,
    classify_ballots,
    count_ballots,
    counting_order,
    live_standings,
    rank_candidates,
    replay_scores,
    score_summary,
    turnout_rate,
)

logger = logging.getLogger(__name__)

EXPORT_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

SCORE_SYNC_WARNING = (
    "Ballot recorded, but live scores could not be updated. "
    "Run reconcile_scores to repair them."
)


class TallyError(Exception):
    pass


class CountingRightError(TallyError):
    pass


class EmptyBallotError(TallyError):
    pass


class LedgerWriteError(TallyError):
    pass


@dataclass(frozen=True)
class PostingResult:
    ballot_id: int
    kind: str
    source: str
    lines: list[BallotLineRow]
    incremented_ids: list[int]
    scores_updated: bool = True
    warning: str = ""


@dataclass(frozen=True)
class ScoreDrift:
    candidate_id: int
    stored: tuple[int, int]
    expected: tuple[int, int]


_SOURCE_BY_COUNTING_RIGHT: dict[str, str] = {
    OperatorProfile.CountingRight.female.value: SOURCE_FEMALE,
    OperatorProfile.CountingRight.male.value: SOURCE_MALE,
}


def source_for_counting_right(counting_right: str | None) -> str:
    right = str(counting_right or "").strip()
    source = _SOURCE_BY_COUNTING_RIGHT.get(right)
    if source is None:
        raise CountingRightError("You are not allowed to count votes.")
    return source


def _score_field(source: str) -> str:
    return "score_from_female" if source == SOURCE_FEMALE else "score_from_male"


def next_ballot_id() -> int:
    """Allocate the next ballot id.

    Must run inside the transaction that writes the ballot lines: the sequence
    row stays locked until that transaction ends, and a rollback gives the id
    back.
    """

    sequence, _created = BallotSequence.objects.select_for_update().get_or_create(pk=1)

    # Ledgers imported from elsewhere may already carry larger ids.
    ledger_max = BallotLine.objects.aggregate(value=Max("ballot_id"))["value"] or 0
    ballot_id = max(int(sequence.last_value), int(ledger_max)) + 1

    sequence.last_value = ballot_id
    sequence.save(update_fields=["last_value"])
    return ballot_id


def roster_candidate_ids() -> list[int]:
    return list(
        Candidate.objects.order_by("candidate_list__order", "candidate_order", "id").values_list("id", flat=True)
    )


def _increment_candidate_scores(*, candidate_ids: list[int], source: str) -> None:
    field = _score_field(source)
    with transaction.atomic():
        Candidate.objects.filter(pk__in=candidate_ids).update(
            **{field: F(field) + 1},
            updated_at=timezone.now(),
        )


def post_ballot(
    *,
    kind: str,
    checked_candidate_ids: Iterable[int],
    counting_right: str | None,
    post_date: datetime.datetime | None = None,
) -> PostingResult:
    """Record one physical ballot and, for valid ballots, bump live scores.

    The ledger write and the score increment are separate transactions: a
    ballot that made it into the ledger stays there even if the score update
    fails afterwards. That failure is reported on the result, not raised.
    """

    source = source_for_counting_right(counting_right)
    if kind not in BALLOT_TYPES:
        raise TallyError(f"Unknown ballot type: {kind}")

    checked = {int(cid) for cid in checked_candidate_ids}
    if kind == BALLOT_TYPE_VALID and not checked:
        raise EmptyBallotError("No votes to post")

    roster_ids = roster_candidate_ids()
    if not roster_ids:
        raise TallyError("There are no candidates to post a ballot for.")
    if kind == BALLOT_TYPE_VALID and checked.isdisjoint(roster_ids):
        raise EmptyBallotError("No votes to post")

    posted_at = post_date or timezone.now()

    try:
        with transaction.atomic():
            ballot_id = next_ballot_id()
            lines = build_ballot_lines(
                kind=kind,
                roster_ids=roster_ids,
                checked_ids=checked,
                ballot_id=ballot_id,
                source=source,
                post_date=posted_at,
            )
            BallotLine.objects.bulk_create(
                [
                    BallotLine(
                        ballot_id=line.ballot_id,
                        candidate_id=line.candidate_id,
                        vote=line.vote,
                        ballot_type=line.ballot_type,
                        ballot_source=line.ballot_source,
                        post_date=line.post_date,
                    )
                    for line in lines
                ]
            )
    except DatabaseError as exc:
        logger.exception("Failed to record ballot kind=%s source=%s", kind, source)
        raise LedgerWriteError("Failed to record the ballot. Please try again.") from exc

    logger.info(
        "Recorded ballot ballot_id=%s kind=%s source=%s lines=%d",
        ballot_id,
        kind,
        source,
        len(lines),
    )

    if kind != BALLOT_TYPE_VALID:
        return PostingResult(ballot_id=ballot_id, kind=kind, source=source, lines=lines, incremented_ids=[])

    marked_ids = [line.candidate_id for line in lines if line.vote == 1]
    try:
        _increment_candidate_scores(candidate_ids=marked_ids, source=source)
    except DatabaseError:
        logger.warning(
            "Score update failed after ballot_id=%s was recorded; candidates=%s source=%s",
            ballot_id,
            marked_ids,
            source,
            exc_info=True,
        )
        return PostingResult(
            ballot_id=ballot_id,
            kind=kind,
            source=source,
            lines=lines,
            incremented_ids=[],
            scores_updated=False,
            warning=SCORE_SYNC_WARNING,
        )

    return PostingResult(ballot_id=ballot_id, kind=kind, source=source, lines=lines, incremented_ids=marked_ids)


def load_ballot_lines(*, candidate_ids: Iterable[int] | None = None) -> list[BallotLineRow]:
    """Snapshot of the ledger, newest ballot first."""

    lines = BallotLine.objects.all()
    if candidate_ids is not None:
        lines = lines.filter(candidate_id__in=list(candidate_ids))
    rows = (
        lines.order_by("-post_date", "-ballot_id", "candidate_id")
        .values("ballot_id", "candidate_id", "vote", "ballot_type", "ballot_source", "post_date")
    )
    return [BallotLineRow.from_mapping(row) for row in rows]


def load_roster() -> list[CandidateScore]:
    candidates = Candidate.objects.select_related("voter", "candidate_list").order_by(
        "candidate_list__order", "candidate_order", "id"
    )
    return [
        CandidateScore(
            id=c.id,
            full_name=c.voter.full_name,
            list_id=c.candidate_list_id,
            list_name=c.candidate_list.name,
            list_order=c.candidate_list.order,
            candidate_order=c.candidate_order,
            score_from_female=c.score_from_female,
            score_from_male=c.score_from_male,
            position=c.position,
        )
        for c in candidates
    ]


@transaction.atomic
def reconcile_candidate_scores(
    *,
    dry_run: bool = False,
    candidate_ids: Iterable[int] | None = None,
) -> list[ScoreDrift]:
    """Replay the ledger into the cached per-candidate scores.

    Returns one record per candidate whose stored scores disagree with the
    ledger; unless ``dry_run`` is set, those candidates are rewritten. With
    ``candidate_ids`` set, only those candidates are checked.

    A score increment still queued behind this transaction's row locks lands
    on top of the replayed value and counts its ballot twice, so run this while
    no station is posting and check again afterwards.
    """

    queryset = Candidate.objects.select_for_update().order_by("id")
    if candidate_ids is not None:
        queryset = queryset.filter(pk__in=list(candidate_ids))
    candidates = list(queryset.only("id", "score_from_female", "score_from_male"))
    selected_ids = [c.id for c in candidates]
    expected = replay_scores(load_ballot_lines(candidate_ids=selected_ids), candidate_ids=selected_ids)

    drifts: list[ScoreDrift] = []
    for candidate in candidates:
        stored = (int(candidate.score_from_female), int(candidate.score_from_male))
        want = expected.get(candidate.id, (0, 0))
        if stored == want:
            continue
        drifts.append(ScoreDrift(candidate_id=candidate.id, stored=stored, expected=want))
        if dry_run:
            continue
        Candidate.objects.filter(pk=candidate.pk).update(
            score_from_female=want[0],
            score_from_male=want[1],
            updated_at=timezone.now(),
        )

    if drifts and not dry_run:
        logger.warning("Reconciled scores for %d candidate(s)", len(drifts))
    return drifts


def _candidate_payload(candidate: CandidateScore, *, source: str | None = None) -> dict[str, object]:
    payload: dict[str, object] = {
        "id": candidate.id,
        "full_name": candidate.full_name,
        "list_id": candidate.list_id,
        "candidate_order": candidate.candidate_order,
    }
    if source is None:
        payload.update(
            score_from_female=candidate.score_from_female,
            score_from_male=candidate.score_from_male,
            total=candidate.total,
        )
    else:
        payload["score"] = candidate.score_for_source(source)
    return payload


def build_live_scores(*, source: str | None = None) -> dict[str, object]:
    """Live standings grouped by list.

    With ``source`` set, each candidate only carries that station's score and
    lists are ranked on it.
    """

    roster = load_roster()
    standings = live_standings(roster, source=source)
    payload: dict[str, object] = {
        "lists": [
            {
                "id": standing.list_id,
                "name": standing.list_name,
                "order": standing.list_order,
                "candidates": [_candidate_payload(c, source=source) for c in standing.candidates],
            }
            for standing in standings
        ],
    }
    if source is None:
        payload["ranking"] = [_candidate_payload(c) for c in rank_candidates(roster)]
        payload.update(score_summary(roster))
    else:
        payload["source"] = source
    return payload


def build_counting_roster() -> list[dict[str, object]]:
    return [
        {
            "id": standing.list_id,
            "name": standing.list_name,
            "order": standing.list_order,
            "candidates": [
                {"id": c.id, "full_name": c.full_name, "candidate_order": c.candidate_order}
                for c in standing.candidates
            ],
        }
        for standing in counting_order(load_roster())
    ]


def build_ballot_counters() -> dict[str, object]:
    return ballot_counters(load_ballot_lines()).as_dict()


def build_ballot_analysis() -> dict[str, object]:
    roster = load_roster()
    candidate_ids = [c.id for c in roster]
    ballots = classify_ballots(load_ballot_lines(), candidate_ids=candidate_ids)

    rows: list[dict[str, object]] = []
    for ballot in ballots:
        rows.append(
            {
                "ballot_id": ballot.ballot_id,
                "ballot_type": ballot.ballot_type,
                "ballot_source": ballot.ballot_source,
                "post_date": ballot.post_date.isoformat() if ballot.post_date else None,
                "status": ballot.status,
                "votes": [ballot.candidate_votes[cid] for cid in candidate_ids],
            }
        )

    return {
        "candidates": [{"id": c.id, "full_name": c.full_name} for c in roster],
        "ballots": rows,
        "counters": count_ballots(ballots).as_dict(),
    }


def _format_export_timestamp(value: datetime.datetime | None) -> str:
    if value is None:
        return ""
    return timezone.localtime(value).strftime(EXPORT_TIMESTAMP_FORMAT)


def build_ballot_analysis_dataset() -> Dataset:
    """Ballot analysis as a spreadsheet: one row per ballot, newest first."""

    roster = load_roster()
    candidate_ids = [c.id for c in roster]

    out = Dataset()
    out.title = "Ballot Analysis"
    out.headers = ["Ballot #", *(c.full_name for c in roster), "Timestamp", "Status"]
    for ballot in classify_ballots(load_ballot_lines(), candidate_ids=candidate_ids):
        out.append(
            [
                ballot.ballot_id,
                *(ballot.candidate_votes[cid] for cid in candidate_ids),
                _format_export_timestamp(ballot.post_date),
                ballot.status,
            ]
        )
    return out


def build_live_scores_dataset() -> Dataset:
    out = Dataset()
    out.title = "Live Scores"
    out.headers = ["Candidate", "Position", "List", "Female Votes", "Male Votes", "Total"]
    for candidate in rank_candidates(load_roster()):
        out.append(
            [
                candidate.full_name,
                candidate.position,
                candidate.list_name,
                candidate.score_from_female,
                candidate.score_from_male,
                candidate.total,
            ]
        )
    return out


def turnout_statistics() -> dict[str, object]:
    agg = Voter.objects.aggregate(
        registered=Count("id"),
        voted=Count("id", filter=Q(has_voted=True)),
        registered_male=Count("id", filter=Q(gender=Voter.Gender.male)),
        voted_male=Count("id", filter=Q(gender=Voter.Gender.male, has_voted=True)),
        registered_female=Count("id", filter=Q(gender=Voter.Gender.female)),
        voted_female=Count("id", filter=Q(gender=Voter.Gender.female, has_voted=True)),
    )

    def _bucket(prefix: str) -> dict[str, int]:
        suffix = f"_{prefix}" if prefix else ""
        registered = int(agg.get(f"registered{suffix}") or 0)
        voted = int(agg.get(f"voted{suffix}") or 0)
        return {
            "registered": registered,
            "voted": voted,
            "not_voted": registered - voted,
            "turnout_percent": turnout_rate(voted=voted, registered=registered),
        }

    return {
        **_bucket(""),
        "male": _bucket("male"),
        "female": _bucket("female"),
    }
