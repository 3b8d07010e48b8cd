from __future__ import annotations

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models
from django.db.models import Q


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Voter",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("full_name", models.CharField(max_length=255)),
                (
                    "gender",
                    models.CharField(
                        blank=True,
                        choices=[("male", "Male"), ("female", "Female")],
                        default="",
                        max_length=10,
                    ),
                ),
                ("has_voted", models.BooleanField(default=False)),
                ("voting_time", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ("full_name", "id"),
                "indexes": [models.Index(fields=["has_voted"], name="voter_has_voted")],
            },
        ),
        migrations.CreateModel(
            name="CandidateList",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255, unique=True)),
                ("order", models.IntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ("order", "id"),
                "verbose_name": "candidate list",
            },
        ),
        migrations.CreateModel(
            name="Candidate",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("candidate_order", models.IntegerField(default=0)),
                ("score_from_female", models.PositiveIntegerField(default=0)),
                ("score_from_male", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "voter",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="candidacies",
                        to="core.voter",
                    ),
                ),
                (
                    "candidate_list",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="candidates",
                        to="core.candidatelist",
                    ),
                ),
            ],
            options={
                "ordering": ("candidate_list__order", "candidate_order", "id"),
            },
        ),
        migrations.CreateModel(
            name="BallotLine",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("ballot_id", models.BigIntegerField(db_index=True)),
                ("vote", models.PositiveSmallIntegerField(default=0)),
                (
                    "ballot_type",
                    models.CharField(
                        choices=[("valid", "Valid"), ("blank", "Blank"), ("invalid", "Invalid")],
                        max_length=10,
                    ),
                ),
                (
                    "ballot_source",
                    models.CharField(choices=[("male", "Male"), ("female", "Female")], max_length=10),
                ),
                ("post_date", models.DateTimeField(db_index=True)),
                (
                    "candidate",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="ballot_lines",
                        to="core.candidate",
                    ),
                ),
            ],
            options={
                "ordering": ("-post_date", "-ballot_id", "candidate_id"),
                "indexes": [models.Index(fields=["ballot_type", "ballot_source"], name="bl_type_src")],
                "constraints": [
                    models.UniqueConstraint(fields=("ballot_id", "candidate"), name="uniq_ballotline_ballot_candidate"),
                    models.CheckConstraint(condition=Q(vote__in=[0, 1]), name="chk_ballotline_vote_0_or_1"),
                ],
            },
        ),
        migrations.CreateModel(
            name="BallotSequence",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("last_value", models.BigIntegerField(default=0)),
            ],
            options={
                "verbose_name": "ballot sequence",
            },
        ),
        migrations.CreateModel(
            name="OperatorProfile",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("full_name", models.CharField(blank=True, default="", max_length=255)),
                (
                    "role",
                    models.CharField(choices=[("admin", "Admin"), ("user", "User")], default="user", max_length=10),
                ),
                (
                    "vote_counting",
                    models.CharField(
                        choices=[
                            ("none", "None"),
                            ("count female votes", "Count female votes"),
                            ("count male votes", "Count male votes"),
                        ],
                        default="none",
                        max_length=32,
                    ),
                ),
                (
                    "voters_list_access",
                    models.CharField(
                        choices=[("none", "None"), ("view", "View"), ("edit", "Edit")],
                        default="none",
                        max_length=10,
                    ),
                ),
                (
                    "statistics_access",
                    models.CharField(
                        choices=[("none", "None"), ("view", "View"), ("edit", "Edit")],
                        default="none",
                        max_length=10,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "user",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="operator_profile",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ("user__username",),
            },
        ),
    ]
