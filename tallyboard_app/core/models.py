from __future__ import annotations

from typing import override

from django.conf import settings
from django.db import models
from django.db.models import Q


class BallotLedgerImmutableError(Exception):
    """Raised when code tries to change or remove a recorded ballot line."""


class Voter(models.Model):
    class Gender(models.TextChoices):
        male = "male", "Male"
        female = "female", "Female"

    full_name = models.CharField(max_length=255)
    gender = models.CharField(max_length=10, choices=Gender.choices, blank=True, default="")
    has_voted = models.BooleanField(default=False)
    voting_time = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["has_voted"], name="voter_has_voted"),
        ]
        ordering = ("full_name", "id")

    def __str__(self) -> str:
        return self.full_name


class CandidateList(models.Model):
    name = models.CharField(max_length=255, unique=True)
    order = models.IntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("order", "id")
        verbose_name = "candidate list"

    def __str__(self) -> str:
        return self.name


class Candidate(models.Model):
    voter = models.ForeignKey(Voter, on_delete=models.PROTECT, related_name="candidacies")
    candidate_list = models.ForeignKey(CandidateList, on_delete=models.PROTECT, related_name="candidates")
    candidate_order = models.IntegerField(default=0)
    # Seat the candidate is running for, as shown on exports.
    position = models.CharField(max_length=255, blank=True, default="")

    # Cumulative cache of the ballot ledger, one counter per counting station.
    # `reconcile_scores` recomputes both from BallotLine rows.
    score_from_female = models.PositiveIntegerField(default=0)
    score_from_male = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("candidate_list__order", "candidate_order", "id")

    def __str__(self) -> str:
        return f"{self.full_name} ({self.candidate_list.name})"

    @property
    def full_name(self) -> str:
        return self.voter.full_name

    @property
    def total_score(self) -> int:
        return int(self.score_from_female or 0) + int(self.score_from_male or 0)


class BallotType(models.TextChoices):
    valid = "valid", "Valid"
    blank = "blank", "Blank"
    invalid = "invalid", "Invalid"


class BallotSource(models.TextChoices):
    male = "male", "Male"
    female = "female", "Female"


class BallotLine(models.Model):
    """One (ballot, candidate) mark.

    A physical ballot is the set of lines sharing a ``ballot_id``; the posting
    service writes all of them in one transaction and never touches them again.
    """

    ballot_id = models.BigIntegerField(db_index=True)
    candidate = models.ForeignKey(Candidate, on_delete=models.PROTECT, related_name="ballot_lines")
    vote = models.PositiveSmallIntegerField(default=0)
    ballot_type = models.CharField(max_length=10, choices=BallotType.choices)
    ballot_source = models.CharField(max_length=10, choices=BallotSource.choices)
    post_date = models.DateTimeField(db_index=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["ballot_id", "candidate"],
                name="uniq_ballotline_ballot_candidate",
            ),
            models.CheckConstraint(
                condition=Q(vote__in=[0, 1]),
                name="chk_ballotline_vote_0_or_1",
            ),
        ]
        indexes = [
            models.Index(fields=["ballot_type", "ballot_source"], name="bl_type_src"),
        ]
        ordering = ("-post_date", "-ballot_id", "candidate_id")

    def __str__(self) -> str:
        return f"ballot {self.ballot_id}: candidate {self.candidate_id} = {self.vote}"

    @override
    def save(self, *args, **kwargs) -> None:
        if self.pk is not None and not self._state.adding:
            raise BallotLedgerImmutableError("ballot lines are append-only (UPDATE is not allowed)")
        super().save(*args, **kwargs)

    @override
    def delete(self, *args, **kwargs):
        raise BallotLedgerImmutableError("ballot lines are append-only (DELETE is not allowed)")


class BallotSequence(models.Model):
    # Single-row counter; the posting service locks it to hand out ballot ids.
    last_value = models.BigIntegerField(default=0)

    class Meta:
        verbose_name = "ballot sequence"

    def __str__(self) -> str:
        return f"last ballot id {self.last_value}"


class OperatorProfile(models.Model):
    class Role(models.TextChoices):
        admin = "admin", "Admin"
        user = "user", "User"

    class CountingRight(models.TextChoices):
        none = "none", "None"
        female = "count female votes", "Count female votes"
        male = "count male votes", "Count male votes"

    class Access(models.TextChoices):
        none = "none", "None"
        view = "view", "View"
        edit = "edit", "Edit"

    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="operator_profile")
    full_name = models.CharField(max_length=255, blank=True, default="")
    role = models.CharField(max_length=10, choices=Role.choices, default=Role.user)
    vote_counting = models.CharField(max_length=32, choices=CountingRight.choices, default=CountingRight.none)
    voters_list_access = models.CharField(max_length=10, choices=Access.choices, default=Access.none)
    statistics_access = models.CharField(max_length=10, choices=Access.choices, default=Access.none)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("user__username",)

    def __str__(self) -> str:
        return f"{self.user.get_username()} ({self.role})"

    @property
    def is_admin(self) -> bool:
        return self.role == self.Role.admin

    @property
    def can_count(self) -> bool:
        return self.vote_counting in (self.CountingRight.female, self.CountingRight.male)
