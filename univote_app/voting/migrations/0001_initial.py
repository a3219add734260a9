import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Election",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                ("start_datetime", models.DateTimeField()),
                ("end_datetime", models.DateTimeField()),
                ("candidacy_start_datetime", models.DateTimeField(blank=True, null=True)),
                ("candidacy_end_datetime", models.DateTimeField(blank=True, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[("upcoming", "Upcoming"), ("active", "Active"), ("completed", "Completed")],
                        default="upcoming",
                        max_length=16,
                    ),
                ),
                ("is_private", models.BooleanField(default=False)),
                ("access_code", models.CharField(blank=True, default="", max_length=64)),
                ("restrict_voting", models.BooleanField(default=False)),
                ("colleges", models.JSONField(blank=True, default=list)),
                ("eligible_year_levels", models.JSONField(blank=True, default=list)),
                ("positions", models.JSONField(blank=True, default=list)),
                ("total_eligible_voters", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ("-start_datetime", "id"),
                "permissions": [
                    ("manage_election", "Can manage elections, read statistics and reset votes"),
                    ("cast_vote", "Can cast votes in elections"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("start_datetime__lt", models.F("end_datetime"))),
                        name="election_start_before_end",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Candidate",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("position", models.CharField(max_length=255)),
                ("name", models.CharField(max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "election",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="candidates",
                        to="voting.election",
                    ),
                ),
            ],
            options={
                "ordering": ("id",),
                "indexes": [models.Index(fields=["election", "position"], name="candidate_el_pos")],
            },
        ),
        migrations.CreateModel(
            name="Profile",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("student_id", models.CharField(blank=True, default="", max_length=64)),
                ("department", models.CharField(blank=True, default="", max_length=255)),
                ("year_level", models.CharField(blank=True, default="", max_length=64)),
                (
                    "user",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="profile",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="BallotEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("position", models.CharField(max_length=255)),
                ("ballot_id", models.UUIDField(db_index=True, default=uuid.uuid4, editable=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "candidate",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="ballot_entries",
                        to="voting.candidate",
                    ),
                ),
                (
                    "election",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="ballot_entries",
                        to="voting.election",
                    ),
                ),
                (
                    "voter",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="ballot_entries",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "Ballot entries",
                "indexes": [models.Index(fields=["election", "created_at"], name="ballotentry_el_at")],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("election", "voter", "position"),
                        name="uniq_ballotentry_election_voter_position",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="AuditLogEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("timestamp", models.DateTimeField(auto_now_add=True)),
                ("event_type", models.CharField(max_length=64)),
                ("payload", models.JSONField(blank=True, default=dict)),
                ("is_public", models.BooleanField(default=False)),
                (
                    "election",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="audit_log",
                        to="voting.election",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "Audit log entries",
                "ordering": ("timestamp", "id"),
                "indexes": [models.Index(fields=["election", "timestamp"], name="audit_el_ts")],
            },
        ),
    ]
