"""
Application Record Store: persistence for IRB/IBC applications.

Owns reads and writes of ResearchApplication, its comments and its
research-activity links.  Business rules about *which* status change is
allowed live in workflow_engine; this module only guarantees that a status
write is atomic and guarded.

Status writes (update_application_status) and comment appends flush but do
not commit: the workflow engine commits once per transition.  Standalone
operations (create, delete, link, unlink) commit themselves.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import func, update

from research_portal.core.exceptions import (
    ConcurrentModification,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from research_portal.models import db
from research_portal.models.application import (
    AUTHOR_TYPE_FOR_COMMENT,
    MILESTONE_ORDER,
    ApplicationComment,
    ApplicationResearchActivity,
    ApplicationStatus,
    ApplicationType,
    CommentType,
    ResearchApplication,
)
from research_portal.models.research import ResearchActivity, Scientist

logger = logging.getLogger(__name__)

_WRITABLE_MILESTONES = frozenset(MILESTONE_ORDER[1:]) | {"expiration_date"}


# ── Reads ────────────────────────────────────────────────────────────────────


def get_application(application_id: int) -> ResearchApplication:
    application = db.session.get(ResearchApplication, application_id)
    if application is None:
        raise NotFoundError("Application", application_id)
    return application


def applications_query(
    application_type=None,
    status=None,
    principal_investigator_id: int | None = None,
):
    """Filtered query over applications, ordered by id."""
    q = ResearchApplication.query
    if application_type:
        q = q.filter(ResearchApplication.application_type == ApplicationType.parse(application_type))
    if status:
        q = q.filter(ResearchApplication.status == ApplicationStatus.parse(status))
    if principal_investigator_id is not None:
        q = q.filter(ResearchApplication.principal_investigator_id == principal_investigator_id)
    return q.order_by(ResearchApplication.id)


def list_applications(
    application_type=None,
    status=None,
    principal_investigator_id: int | None = None,
) -> list[ResearchApplication]:
    return applications_query(application_type, status, principal_investigator_id).all()


# ── Create / delete ──────────────────────────────────────────────────────────


def _next_protocol_number(application_type: ApplicationType, year: int) -> str:
    """Next {IRB|IBC}-{year}-{seq:03d}, sequence scoped per type and year."""
    prefix = f"{application_type.value.upper()}-{year}-"
    count = (
        db.session.query(func.count(ResearchApplication.id))
        .filter(ResearchApplication.protocol_number.like(f"{prefix}%"))
        .scalar()
    ) or 0

    seq = count + 1
    # Deleted drafts leave gaps; skip numbers still taken
    while ResearchApplication.query.filter_by(protocol_number=f"{prefix}{seq:03d}").first():
        seq += 1
    return f"{prefix}{seq:03d}"


def create_application(
    application_type,
    title: str,
    principal_investigator_id: int,
    research_activity_id: int | None = None,
    protocol_number: str | None = None,
    *,
    short_title: str | None = None,
    description: str | None = None,
    research_activity_ids: list[int] | None = None,
    now: datetime | None = None,
) -> ResearchApplication:
    """
    Create an application in draft.

    IBC applications may pass ``research_activity_ids`` to create link rows
    in the same transaction.
    """
    kind = ApplicationType.parse(application_type)
    title = (title or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "required"})

    if principal_investigator_id is None or db.session.get(Scientist, principal_investigator_id) is None:
        raise NotFoundError("Scientist", principal_investigator_id)
    if research_activity_id is not None and db.session.get(ResearchActivity, research_activity_id) is None:
        raise NotFoundError("ResearchActivity", research_activity_id)

    linked_ids = list(dict.fromkeys(research_activity_ids or []))
    if linked_ids and kind is not ApplicationType.IBC:
        raise ValidationError("Only IBC applications link multiple research activities")
    for activity_id in linked_ids:
        if db.session.get(ResearchActivity, activity_id) is None:
            raise NotFoundError("ResearchActivity", activity_id)

    now = now or datetime.now(timezone.utc)
    if protocol_number:
        protocol_number = protocol_number.strip()
        if ResearchApplication.query.filter_by(protocol_number=protocol_number).first():
            raise ConflictError("Application", "protocol_number", protocol_number)
    else:
        protocol_number = _next_protocol_number(kind, now.year)

    application = ResearchApplication(
        application_type=kind,
        protocol_number=protocol_number,
        title=title,
        short_title=(short_title or "").strip() or None,
        description=description,
        status=ApplicationStatus.DRAFT,
        version=1,
        principal_investigator_id=principal_investigator_id,
        research_activity_id=research_activity_id,
        created_at=now,
    )
    db.session.add(application)
    db.session.flush()

    for activity_id in linked_ids:
        db.session.add(ApplicationResearchActivity(
            application_id=application.id,
            research_activity_id=activity_id,
        ))

    db.session.commit()
    logger.info(
        "Application created: %s (%s)", protocol_number, kind.value,
        extra={"application_id": application.id, "event_type": "application_created"},
    )
    return application


def delete_application(application_id: int) -> None:
    """Delete a draft application together with its comments and links."""
    application = get_application(application_id)
    if ApplicationStatus(application.status) is not ApplicationStatus.DRAFT:
        raise ValidationError(
            f"Only draft applications can be deleted (status is '{ApplicationStatus(application.status).value}')",
        )
    protocol_number = application.protocol_number
    db.session.delete(application)
    db.session.commit()
    logger.info(
        "Application deleted: %s", protocol_number,
        extra={"application_id": application_id, "event_type": "application_deleted"},
    )


# ── Status write (compare-and-set) ───────────────────────────────────────────


def update_application_status(
    application_id: int,
    new_status,
    milestones: dict | None = None,
    expected_status=None,
    *,
    expected_version: int | None = None,
) -> ResearchApplication:
    """
    Atomically move an application to ``new_status``.

    A single UPDATE guarded by the expected current status and version.
    When another writer got there first no row matches and
    ConcurrentModification is raised.  Milestone values are written only
    where the stored column is still NULL.  Flushes; the caller commits.
    """
    new_status = ApplicationStatus.parse(new_status)
    application = get_application(application_id)
    if expected_status is None:
        expected_status = application.status
    expected_status = ApplicationStatus.parse(expected_status)
    if expected_version is None:
        expected_version = application.version

    values = {
        "status": new_status,
        "version": ResearchApplication.version + 1,
        "updated_at": datetime.now(timezone.utc),
    }
    for name, value in (milestones or {}).items():
        if name not in _WRITABLE_MILESTONES:
            raise ValidationError(f"Unknown milestone field '{name}'")
        if value is None:
            continue
        column = getattr(ResearchApplication, name)
        values[name] = func.coalesce(column, value)

    stmt = (
        update(ResearchApplication)
        .where(
            ResearchApplication.id == application_id,
            ResearchApplication.status == expected_status,
            ResearchApplication.version == expected_version,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)

    refreshed = db.session.get(ResearchApplication, application_id, populate_existing=True)
    if result.rowcount != 1:
        actual = ApplicationStatus(refreshed.status).value if refreshed else None
        logger.warning(
            "Concurrent status change on application %s: expected %s, found %s",
            application_id, expected_status.value, actual,
            extra={"application_id": application_id, "event_type": "concurrent_modification"},
        )
        raise ConcurrentModification(application_id, expected_status.value, actual)
    return refreshed


# ── Comment log ──────────────────────────────────────────────────────────────


def append_comment(
    application_id: int,
    comment_type,
    text: str,
    author_id: int | None = None,
    *,
    author_name: str | None = None,
    author_type: str | None = None,
    status_from: str | None = None,
    status_to: str | None = None,
    recommendation: str | None = None,
    created_at: datetime | None = None,
) -> ApplicationComment:
    """Append a comment row.  Flushes; the caller commits."""
    comment_type = CommentType.parse(comment_type)
    if not (text or "").strip():
        raise ValidationError("comment text is required", details={"comment": "required"})
    get_application(application_id)

    comment = ApplicationComment(
        application_id=application_id,
        comment_type=comment_type,
        comment=text,
        author_id=author_id,
        author_name=author_name,
        author_type=author_type or AUTHOR_TYPE_FOR_COMMENT[comment_type],
        status_from=status_from,
        status_to=status_to,
        recommendation=recommendation,
        created_at=created_at or datetime.now(timezone.utc),
    )
    db.session.add(comment)
    db.session.flush()
    return comment


def list_comments(application_id: int) -> list[ApplicationComment]:
    """Comments in insertion order."""
    get_application(application_id)
    return (
        ApplicationComment.query
        .filter_by(application_id=application_id)
        .order_by(ApplicationComment.id)
        .all()
    )


# ── Research activity links (IBC) ────────────────────────────────────────────


def link_research_activity(application_id: int, research_activity_id: int) -> ApplicationResearchActivity:
    application = get_application(application_id)
    if ApplicationType(application.application_type) is not ApplicationType.IBC:
        raise ValidationError(
            "Research activity links are only supported for IBC applications",
            details={"application_type": ApplicationType(application.application_type).value},
        )
    if db.session.get(ResearchActivity, research_activity_id) is None:
        raise NotFoundError("ResearchActivity", research_activity_id)

    existing = ApplicationResearchActivity.query.filter_by(
        application_id=application_id, research_activity_id=research_activity_id,
    ).first()
    if existing:
        raise ConflictError("ApplicationResearchActivity", "research_activity_id", str(research_activity_id))

    link = ApplicationResearchActivity(
        application_id=application_id,
        research_activity_id=research_activity_id,
    )
    db.session.add(link)
    db.session.commit()
    logger.info(
        "Linked research activity %s to application %s", research_activity_id, application_id,
        extra={"application_id": application_id, "event_type": "activity_linked"},
    )
    return link


def unlink_research_activity(application_id: int, research_activity_id: int) -> None:
    get_application(application_id)
    link = ApplicationResearchActivity.query.filter_by(
        application_id=application_id, research_activity_id=research_activity_id,
    ).first()
    if link is None:
        raise NotFoundError("ApplicationResearchActivity", f"{application_id}/{research_activity_id}")
    db.session.delete(link)
    db.session.commit()
    logger.info(
        "Unlinked research activity %s from application %s", research_activity_id, application_id,
        extra={"application_id": application_id, "event_type": "activity_unlinked"},
    )


def list_linked_research_activities(application_id: int) -> list[ApplicationResearchActivity]:
    get_application(application_id)
    return (
        ApplicationResearchActivity.query
        .filter_by(application_id=application_id)
        .order_by(ApplicationResearchActivity.id)
        .all()
    )
