from __future__ import annotations

from typing import override

from django.core.management.base import BaseCommand

from core.tally_services import reconcile_candidate_scores


class Command(BaseCommand):
    help = (
        "Recompute candidate scores from the ballot ledger and repair any drift. "
        "Run it while no counting station is posting ballots."
    )

    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Report drifted candidates without modifying their scores.",
        )

    @override
    def handle(self, *args, **options) -> None:
        dry_run: bool = bool(options.get("dry_run"))

        drifts = reconcile_candidate_scores(dry_run=dry_run)

        prefix = "[dry-run] " if dry_run else ""
        for drift in drifts:
            self.stdout.write(
                f"{prefix}Candidate {drift.candidate_id}: "
                f"female {drift.stored[0]} -> {drift.expected[0]}, "
                f"male {drift.stored[1]} -> {drift.expected[1]}"
            )

        if dry_run:
            self.stdout.write(f"[dry-run] Would repair {len(drifts)} candidate(s).")
            return

        self.stdout.write(f"Repaired {len(drifts)} candidate(s).")
        if not drifts:
            return

        # A posting that raced the repair shows up as fresh drift once the locks are gone.
        remaining = reconcile_candidate_scores(dry_run=True)
        if remaining:
            self.stderr.write(
                f"Scores drifted again for {len(remaining)} candidate(s) while repairing; "
                "run reconcile_scores again once counting has stopped."
            )
            return
        self.stdout.write("Verified: scores match the ballot ledger.")
