"""
Research Administration Portal
Regulatory application domain models.

Models:
    - ResearchApplication: IRB (human subjects) and IBC (biosafety)
      applications.  Both kinds share one workflow, so they share a table
      and are told apart by ``application_type``.
    - ApplicationResearchActivity: IBC ↔ research activity join rows.
    - ApplicationComment: append-only comment / audit log per application.

Workflow constants (TRANSITIONS, TRANSITION_ACTIONS, MILESTONE_*) live here,
next to the columns they govern; services/workflow_engine.py applies them.
"""

from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType

from research_portal.core.exceptions import ValidationError
from research_portal.models import db


# ── Enumerations ─────────────────────────────────────────────────────────────


class ApplicationType(str, Enum):
    IRB = "irb"
    IBC = "ibc"

    @classmethod
    def parse(cls, value) -> "ApplicationType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            raise ValidationError(
                f"Invalid application_type '{value}'",
                details={"application_type": [m.value for m in cls]},
            ) from None


class ApplicationStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    VETTED = "vetted"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    EXPIRED = "expired"
    REJECTED = "rejected"

    @classmethod
    def parse(cls, value) -> "ApplicationStatus":
        """Coerce user input to a status.  ``active`` is the IBC office's
        historical name for ``approved``."""
        if isinstance(value, cls):
            return value
        raw = str(value or "").strip().lower().replace(" ", "_").replace("-", "_")
        if raw == "active":
            return cls.APPROVED
        try:
            return cls(raw)
        except ValueError:
            raise ValidationError(
                f"Invalid status '{value}'",
                details={"status": [m.value for m in cls]},
            ) from None

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


class CommentType(str, Enum):
    OFFICE_COMMENT = "office_comment"
    REVIEWER_FEEDBACK = "reviewer_feedback"
    PI_RESPONSE = "pi_response"
    STATUS_CHANGE = "status_change"

    @classmethod
    def parse(cls, value) -> "CommentType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            raise ValidationError(
                f"Invalid comment_type '{value}'",
                details={"comment_type": [m.value for m in cls]},
            ) from None


AUTHOR_TYPE_FOR_COMMENT = MappingProxyType({
    CommentType.OFFICE_COMMENT: "office",
    CommentType.REVIEWER_FEEDBACK: "reviewer",
    CommentType.PI_RESPONSE: "pi",
    CommentType.STATUS_CHANGE: "system",
})

REVIEW_RECOMMENDATIONS = frozenset({"approve", "reject", "minor_revisions", "major_revisions"})


# ── Lifecycle Transition Guards ──────────────────────────────────────────────

_S = ApplicationStatus

TERMINAL_STATUSES = frozenset({_S.EXPIRED, _S.REJECTED})

TRANSITIONS = MappingProxyType({
    _S.DRAFT:        (_S.SUBMITTED,),
    _S.SUBMITTED:    (_S.VETTED,),
    _S.VETTED:       (_S.UNDER_REVIEW,),
    _S.UNDER_REVIEW: (_S.APPROVED, _S.REJECTED),
    _S.APPROVED:     (_S.EXPIRED,),
    _S.EXPIRED:      (),
    _S.REJECTED:     (),
})

# (from, to) → (action name, navigation item suffix that authorizes it).
# The full navigation item is f"{application_type}-{suffix}".
TRANSITION_ACTIONS = MappingProxyType({
    (_S.DRAFT, _S.SUBMITTED):        ("submit", "applications"),
    (_S.SUBMITTED, _S.VETTED):       ("vet", "office"),
    (_S.VETTED, _S.UNDER_REVIEW):    ("assign_to_board", "office"),
    (_S.UNDER_REVIEW, _S.APPROVED):  ("approve", "reviewer"),
    (_S.UNDER_REVIEW, _S.REJECTED):  ("reject", "reviewer"),
    (_S.APPROVED, _S.EXPIRED):       ("expire", "office"),
})

# Milestone column stamped when a status is entered
MILESTONE_FOR_STATUS = MappingProxyType({
    _S.SUBMITTED: "submission_date",
    _S.VETTED: "vetted_date",
    _S.UNDER_REVIEW: "under_review_date",
    _S.APPROVED: "approval_date",
})

# Required chronological order of milestone columns
MILESTONE_ORDER = (
    "created_at",
    "submission_date",
    "vetted_date",
    "under_review_date",
    "approval_date",
)

STATUS_LABELS = MappingProxyType({
    _S.DRAFT: "Draft",
    _S.SUBMITTED: "Submitted",
    _S.VETTED: "Vetted",
    _S.UNDER_REVIEW: "Under Review",
    _S.APPROVED: "Approved",
    _S.EXPIRED: "Expired",
    _S.REJECTED: "Rejected",
})


def is_valid_transition(old_status, new_status) -> bool:
    """Return True if the status edge exists in TRANSITIONS."""
    return new_status in TRANSITIONS.get(old_status, ())


def _enum_column(enum_cls, length: int):
    """String-backed enum column storing the member values."""
    return db.Enum(
        enum_cls,
        native_enum=False,
        length=length,
        validate_strings=True,
        values_callable=lambda members: [m.value for m in members],
        name=f"{enum_cls.__name__.lower()}_enum",
    )


def _iso(value):
    return value.isoformat() if value else None


# ── Models ───────────────────────────────────────────────────────────────────


class ResearchApplication(db.Model):
    """
    IRB or IBC application moving through the review workflow.

    Business rules:
    - status is always one of ApplicationStatus; new rows start in draft.
    - Milestone timestamps are stamped once when their status is entered
      and never cleared; their order follows MILESTONE_ORDER.
    - ``version`` increments on every status write and guards the
      compare-and-set in application_store.update_application_status.
    """

    __tablename__ = "research_applications"
    __table_args__ = (
        db.Index("ix_research_app_type_status", "application_type", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    application_type = db.Column(_enum_column(ApplicationType, 3), nullable=False)
    protocol_number = db.Column(
        db.String(40), nullable=False, unique=True,
        comment="Human-readable protocol number, e.g. IRB-2023-045",
    )
    title = db.Column(db.String(500), nullable=False)
    short_title = db.Column(db.String(150), nullable=True)
    description = db.Column(db.Text, nullable=True)

    status = db.Column(
        _enum_column(ApplicationStatus, 20),
        nullable=False,
        default=ApplicationStatus.DRAFT,
    )
    version = db.Column(db.Integer, nullable=False, default=1)

    principal_investigator_id = db.Column(
        db.Integer,
        db.ForeignKey("scientists.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    research_activity_id = db.Column(
        db.Integer,
        db.ForeignKey("research_activities.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Primary SDR (IRB); IBC applications also use the link table",
    )

    # Milestones
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    submission_date = db.Column(db.DateTime(timezone=True), nullable=True)
    vetted_date = db.Column(db.DateTime(timezone=True), nullable=True)
    under_review_date = db.Column(db.DateTime(timezone=True), nullable=True)
    approval_date = db.Column(db.DateTime(timezone=True), nullable=True)
    expiration_date = db.Column(db.DateTime(timezone=True), nullable=True)

    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    principal_investigator = db.relationship("Scientist", lazy="joined")
    comments = db.relationship(
        "ApplicationComment",
        backref="application",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ApplicationComment.id",
    )
    research_activity_links = db.relationship(
        "ApplicationResearchActivity",
        backref="application",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ApplicationResearchActivity.id",
    )

    @property
    def navigation_prefix(self) -> str:
        return ApplicationType(self.application_type).value

    def milestones(self) -> dict:
        return {
            "created_at": self.created_at,
            "submission_date": self.submission_date,
            "vetted_date": self.vetted_date,
            "under_review_date": self.under_review_date,
            "approval_date": self.approval_date,
            "expiration_date": self.expiration_date,
        }

    def to_dict(self) -> dict:
        pi = self.principal_investigator
        return {
            "id": self.id,
            "application_type": ApplicationType(self.application_type).value,
            "protocol_number": self.protocol_number,
            "title": self.title,
            "short_title": self.short_title,
            "description": self.description,
            "status": ApplicationStatus(self.status).value,
            "version": self.version,
            "principal_investigator_id": self.principal_investigator_id,
            "principal_investigator_name": pi.name if pi else None,
            "research_activity_id": self.research_activity_id,
            "research_activity_ids": [
                link.research_activity_id for link in self.research_activity_links
            ],
            **{name: _iso(value) for name, value in self.milestones().items()},
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<ResearchApplication {self.id}: {self.protocol_number} [{self.status}]>"


class ApplicationResearchActivity(db.Model):
    """Many-to-many link between an IBC application and research activities.

    Deleting an application removes its link rows; the activity itself
    cannot be deleted while linked (RESTRICT).
    """

    __tablename__ = "application_research_activities"
    __table_args__ = (
        db.UniqueConstraint(
            "application_id", "research_activity_id",
            name="uq_application_research_activity",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    application_id = db.Column(
        db.Integer,
        db.ForeignKey("research_applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    research_activity_id = db.Column(
        db.Integer,
        db.ForeignKey("research_activities.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    research_activity = db.relationship("ResearchActivity", lazy="joined")

    def to_dict(self) -> dict:
        activity = self.research_activity
        return {
            "id": self.id,
            "application_id": self.application_id,
            "research_activity_id": self.research_activity_id,
            "sdr_number": activity.sdr_number if activity else None,
            "title": activity.title if activity else None,
            "created_at": _iso(self.created_at),
        }


class ApplicationComment(db.Model):
    """
    Append-only comment on an application.

    status_change rows are the transition audit trail; they are stored but
    left out of the rendered timeline because milestones already show them.
    """

    __tablename__ = "application_comments"
    __table_args__ = (
        db.Index("ix_app_comment_app_created", "application_id", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    application_id = db.Column(
        db.Integer,
        db.ForeignKey("research_applications.id", ondelete="CASCADE"),
        nullable=False,
    )
    comment_type = db.Column(_enum_column(CommentType, 30), nullable=False)
    comment = db.Column(db.Text, nullable=False)

    author_id = db.Column(
        db.Integer, nullable=True,
        comment="Actor id from the gateway; a scientist id only for PI responses",
    )
    author_name = db.Column(db.String(200), nullable=True)
    author_type = db.Column(
        db.String(20), nullable=False, default="system",
        comment="office | reviewer | pi | system",
    )

    status_from = db.Column(db.String(20), nullable=True)
    status_to = db.Column(db.String(20), nullable=True)
    recommendation = db.Column(db.String(30), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "application_id": self.application_id,
            "comment_type": CommentType(self.comment_type).value,
            "comment": self.comment,
            "author_id": self.author_id,
            "author_name": self.author_name,
            "author_type": self.author_type,
            "status_from": self.status_from,
            "status_to": self.status_to,
            "recommendation": self.recommendation,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<ApplicationComment {self.id} {self.comment_type} app={self.application_id}>"
