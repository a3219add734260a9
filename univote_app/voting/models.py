from __future__ import annotations

import datetime
import uuid

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import F, Q

UNIVERSITY_WIDE = "University-wide"
ALL_YEAR_LEVELS = "All Year Levels"


class ElectionQuerySet(models.QuerySet["Election"]):
    def accepting_votes_at(self, *, now: datetime.datetime) -> ElectionQuerySet:
        """Elections whose voting window contains ``now``, whatever their cached status says."""
        return self.filter(start_datetime__lte=now, end_datetime__gt=now)


class Election(models.Model):
    class Status(models.TextChoices):
        upcoming = "upcoming", "Upcoming"
        active = "active", "Active"
        completed = "completed", "Completed"

    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    start_datetime = models.DateTimeField()
    end_datetime = models.DateTimeField()
    candidacy_start_datetime = models.DateTimeField(blank=True, null=True)
    candidacy_end_datetime = models.DateTimeField(blank=True, null=True)

    # Display cache only. Permission decisions recompute from the dates.
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.upcoming)

    is_private = models.BooleanField(default=False)
    access_code = models.CharField(max_length=64, blank=True, default="")

    restrict_voting = models.BooleanField(default=False)
    colleges = models.JSONField(blank=True, default=list)
    eligible_year_levels = models.JSONField(blank=True, default=list)

    # Ordered position names; this is the ballot structure.
    positions = models.JSONField(blank=True, default=list)

    # Maintained by eligible-voter list management, read here for turnout only.
    total_eligible_voters = models.PositiveIntegerField(default=0)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ElectionQuerySet.as_manager()

    class Meta:
        ordering = ("-start_datetime", "id")
        constraints = [
            models.CheckConstraint(
                condition=Q(start_datetime__lt=F("end_datetime")),
                name="election_start_before_end",
            ),
        ]
        permissions = [
            ("manage_election", "Can manage elections, read statistics and reset votes"),
            ("cast_vote", "Can cast votes in elections"),
        ]

    def __str__(self) -> str:
        return self.title

    def clean(self) -> None:
        super().clean()
        if self.start_datetime and self.end_datetime and self.start_datetime >= self.end_datetime:
            raise ValidationError({"end_datetime": "End date must be after the start date."})
        if (
            self.candidacy_start_datetime
            and self.candidacy_end_datetime
            and self.candidacy_start_datetime > self.candidacy_end_datetime
        ):
            raise ValidationError({"candidacy_end_datetime": "Candidacy end must not precede its start."})
        if len(set(self.positions or [])) != len(self.positions or []):
            raise ValidationError({"positions": "Positions must be unique."})
        if self.is_private and not str(self.access_code or "").strip():
            raise ValidationError({"access_code": "Private elections require an access code."})


class Candidate(models.Model):
    election = models.ForeignKey(Election, on_delete=models.CASCADE, related_name="candidates")
    position = models.CharField(max_length=255)
    name = models.CharField(max_length=255)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        # Primary key order doubles as registration order for tally tie ordering.
        ordering = ("id",)
        indexes = [
            models.Index(fields=["election", "position"], name="candidate_el_pos"),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.position})"

    def clean(self) -> None:
        super().clean()
        if self.election_id and self.position not in (self.election.positions or []):
            raise ValidationError({"position": "Position is not contested in this election."})


class Profile(models.Model):
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="profile")
    student_id = models.CharField(max_length=64, blank=True, default="")
    department = models.CharField(max_length=255, blank=True, default="")
    year_level = models.CharField(max_length=64, blank=True, default="")

    def __str__(self) -> str:
        return f"profile:{self.user_id}"


class BallotEntryQuerySet(models.QuerySet["BallotEntry"]):
    def for_election(self, *, election: Election) -> BallotEntryQuerySet:
        return self.filter(election=election)

    def for_voter(self, *, election: Election, user_id: int) -> BallotEntryQuerySet:
        return self.filter(election=election, voter_id=user_id)


class BallotEntry(models.Model):
    """One voter's choice for one position. A null candidate records an abstention."""

    election = models.ForeignKey(Election, on_delete=models.CASCADE, related_name="ballot_entries")
    voter = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="ballot_entries")
    position = models.CharField(max_length=255)
    candidate = models.ForeignKey(
        Candidate,
        on_delete=models.PROTECT,
        blank=True,
        null=True,
        related_name="ballot_entries",
    )

    # Shared by every row written for the same ballot.
    ballot_id = models.UUIDField(default=uuid.uuid4, editable=False, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = BallotEntryQuerySet.as_manager()

    class Meta:
        verbose_name_plural = "Ballot entries"
        constraints = [
            models.UniqueConstraint(
                fields=["election", "voter", "position"],
                name="uniq_ballotentry_election_voter_position",
            ),
        ]
        indexes = [
            models.Index(fields=["election", "created_at"], name="ballotentry_el_at"),
        ]

    def __str__(self) -> str:
        return f"{self.election_id}:{self.voter_id}:{self.position}"

    @property
    def is_abstain(self) -> bool:
        return self.candidate_id is None


class AuditLogEntry(models.Model):
    election = models.ForeignKey(Election, on_delete=models.CASCADE, related_name="audit_log")
    timestamp = models.DateTimeField(auto_now_add=True)
    event_type = models.CharField(max_length=64)
    payload = models.JSONField(blank=True, default=dict)
    is_public = models.BooleanField(default=False)

    class Meta:
        verbose_name_plural = "Audit log entries"
        ordering = ("timestamp", "id")
        indexes = [
            models.Index(fields=["election", "timestamp"], name="audit_el_ts"),
        ]

    def __str__(self) -> str:
        return f"{self.election_id}:{self.event_type}"
