"""
Workflow Engine: IRB/IBC application lifecycle.

Manages application status transitions with:
  - Transition validation (TRANSITIONS table in models/application.py)
  - Permission checks against the role × navigation-item table
  - Milestone stamping (submission → vetted → under review → approval)
  - Audit trail via status_change comments
  - Timeline composition for display

Transitions:
  submit           draft → submitted          {kind}-applications (PI only)
  vet              submitted → vetted         {kind}-office
  assign_to_board  vetted → under_review      {kind}-office
  approve          under_review → approved    {kind}-reviewer
  reject           under_review → rejected    {kind}-reviewer
  expire           approved → expired         {kind}-office or expiry sweep

Usage:
    from research_portal.services.workflow_engine import transition_application

    result = transition_application(
        application_id=42,
        target_status="vetted",
        actor=Actor(role="IRB Office", id=7, name="Dana"),
        expected_status="submitted",
    )
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone

from flask import current_app

from research_portal.auth import SYSTEM_ACTOR, Actor
from research_portal.core.exceptions import (
    ConcurrentModification,
    Forbidden,
    InvalidTransition,
    NotFoundError,
    ValidationError,
)
from research_portal.models import db
from research_portal.models.application import (
    MILESTONE_FOR_STATUS,
    MILESTONE_ORDER,
    REVIEW_RECOMMENDATIONS,
    STATUS_LABELS,
    TRANSITION_ACTIONS,
    TRANSITIONS,
    ApplicationComment,
    ApplicationStatus,
    CommentType,
    ResearchApplication,
    is_valid_transition,
)
from research_portal.services import application_store as store
from research_portal.services import permission_service
from research_portal.utils.helpers import ensure_utc

logger = logging.getLogger(__name__)

# Navigation suffix of the authorizing item → note type recorded with a transition
_NOTE_FOR_SUFFIX = {
    "applications": CommentType.PI_RESPONSE,
    "office": CommentType.OFFICE_COMMENT,
    "reviewer": CommentType.REVIEWER_FEEDBACK,
}

_RECOMMENDATION_TARGET = {
    "approve": ApplicationStatus.APPROVED,
    "reject": ApplicationStatus.REJECTED,
}


@dataclass(frozen=True)
class TransitionCheck:
    valid: bool
    from_status: ApplicationStatus
    to_status: ApplicationStatus
    reason: str | None = None
    action: str | None = None
    navigation_item: str | None = None


def validate_transition(application: ResearchApplication, target) -> TransitionCheck:
    """
    Validate whether ``target`` is reachable from the application's status.

    Pure: reads the application, writes nothing.
    """
    current = ApplicationStatus(application.status)
    target = ApplicationStatus.parse(target)

    if not is_valid_transition(current, target):
        reason = (
            f"'{current.value}' is a terminal status" if current.is_terminal
            else f"'{target.value}' is not reachable from '{current.value}'"
        )
        return TransitionCheck(False, current, target, reason)

    action, suffix = TRANSITION_ACTIONS[(current, target)]
    return TransitionCheck(
        True, current, target,
        action=action,
        navigation_item=f"{application.navigation_prefix}-{suffix}",
    )


def _authorize(application: ResearchApplication, check: TransitionCheck, actor: Actor) -> None:
    permission_service.require_full_access(actor.role, check.navigation_item, check.action)
    if check.action == "submit" and actor.id != application.principal_investigator_id:
        logger.warning(
            "Actor %s is not the PI of application %s; submit denied",
            actor.id, application.id,
            extra={"application_id": application.id, "actor_id": actor.id,
                   "event_type": "permission_denied"},
        )
        raise Forbidden(actor.role, check.navigation_item, "submit (principal investigator only)")


def _compute_milestones(application: ResearchApplication, target: ApplicationStatus, now: datetime) -> dict:
    """
    Milestone values to write for a move into ``target``.

    Enforces: every milestone after submission needs a submission date,
    milestones never precede the one before them, expiration never
    precedes approval.
    """
    current = {name: ensure_utc(getattr(application, name)) for name in MILESTONE_ORDER}
    current["expiration_date"] = ensure_utc(application.expiration_date)
    from_value = ApplicationStatus(application.status).value
    updates = {}

    field = MILESTONE_FOR_STATUS.get(target)
    if field:
        if field != "submission_date" and current["submission_date"] is None:
            raise InvalidTransition(from_value, target.value, "application has no submission date")
        value = current[field] or now
        position = MILESTONE_ORDER.index(field)
        for earlier in reversed(MILESTONE_ORDER[:position]):
            if current[earlier] is not None:
                if value < current[earlier]:
                    raise InvalidTransition(
                        from_value, target.value,
                        f"{field} would precede {earlier}",
                    )
                break
        if current[field] is None:
            updates[field] = value
            current[field] = value

    if target is ApplicationStatus.APPROVED and current["expiration_date"] is None:
        period = current_app.config.get("APPROVAL_PERIOD_DAYS", 365)
        updates["expiration_date"] = current["approval_date"] + timedelta(days=period)

    if target is ApplicationStatus.EXPIRED and current["expiration_date"] is None:
        if current["approval_date"] is not None and now < current["approval_date"]:
            raise InvalidTransition(from_value, target.value, "expiration would precede approval")
        updates["expiration_date"] = now

    return updates


def _apply_transition(
    application: ResearchApplication,
    target: ApplicationStatus,
    actor: Actor,
    *,
    expected_status: ApplicationStatus | None,
    comment: str | None,
    now: datetime,
    skip_permission: bool,
) -> dict:
    """Validate, authorize and write one transition.  Does not commit."""
    current = ApplicationStatus(application.status)

    if expected_status is not None and expected_status is not current:
        logger.warning(
            "Stale transition request on application %s: expected %s, found %s",
            application.id, expected_status.value, current.value,
            extra={"application_id": application.id, "actor_id": actor.id,
                   "event_type": "concurrent_modification"},
        )
        raise ConcurrentModification(application.id, expected_status.value, current.value)

    check = validate_transition(application, target)
    if not check.valid:
        raise InvalidTransition(current.value, target.value, check.reason)

    if not skip_permission:
        _authorize(application, check, actor)

    milestones = _compute_milestones(application, target, now)
    updated = store.update_application_status(
        application.id, target, milestones,
        expected_status=current,
        expected_version=application.version,
    )

    store.append_comment(
        updated.id,
        CommentType.STATUS_CHANGE,
        f"Status changed from {STATUS_LABELS[current]} to {STATUS_LABELS[target]}",
        actor.id,
        author_name=actor.display_name,
        status_from=current.value,
        status_to=target.value,
        created_at=now,
    )
    if comment and comment.strip():
        suffix = check.navigation_item.rsplit("-", 1)[-1]
        store.append_comment(
            updated.id,
            _NOTE_FOR_SUFFIX[suffix],
            comment.strip(),
            actor.id,
            author_name=actor.display_name,
            created_at=now,
        )

    return {
        "application_id": updated.id,
        "protocol_number": updated.protocol_number,
        "previous_status": current.value,
        "new_status": target.value,
        "action": check.action,
    }


def transition_application(
    application_id: int,
    target_status,
    actor: Actor,
    *,
    expected_status=None,
    comment: str | None = None,
    now: datetime | None = None,
    skip_permission: bool = False,
) -> dict:
    """
    Execute an application status transition.

    Args:
        application_id: PK of the application
        target_status: ApplicationStatus or its string value ("active" = approved)
        actor: Who is performing the transition
        expected_status: Status the caller last saw; a mismatch raises
            ConcurrentModification instead of applying
        comment: Optional note stored next to the status_change entry
        now: Transition time (defaults to current UTC time)
        skip_permission: Skip RBAC check (internal calls such as the expiry sweep)

    Returns:
        {"application_id", "protocol_number", "previous_status", "new_status",
         "action", "application"}

    Raises:
        NotFoundError, ValidationError, InvalidTransition, Forbidden,
        ConcurrentModification
    """
    try:
        application = store.get_application(application_id)
        target = ApplicationStatus.parse(target_status)
        expected = ApplicationStatus.parse(expected_status) if expected_status else None
        now = ensure_utc(now) or datetime.now(timezone.utc)

        result = _apply_transition(
            application, target, actor,
            expected_status=expected,
            comment=comment,
            now=now,
            skip_permission=skip_permission,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Application %s: %s → %s by %s",
        result["protocol_number"], result["previous_status"], result["new_status"],
        actor.display_name,
        extra={"application_id": application_id, "actor_id": actor.id,
               "actor_role": actor.role, "event_type": "status_transition"},
    )
    result["application"] = store.get_application(application_id).to_dict()
    return result


def batch_transition(application_ids: list[int], target_status, actor: Actor) -> dict:
    """
    Batch transition for multiple applications. Partial success allowed.

    Returns:
        {"success": [...], "errors": [...]}
    """
    results = {"success": [], "errors": []}

    for application_id in application_ids:
        try:
            result = transition_application(application_id, target_status, actor)
            results["success"].append(result)
        except (NotFoundError, ValidationError, InvalidTransition, Forbidden, ConcurrentModification) as e:
            results["errors"].append({
                "application_id": application_id,
                "error": str(e),
                "error_type": type(e).__name__,
            })

    return results


def get_available_actions(application: ResearchApplication, actor: Actor | None) -> list[dict]:
    """Transitions from the current status that ``actor`` would be allowed to apply.

    Mirrors _authorize: full access on the navigation item, and ``submit``
    only for the principal investigator.
    """
    current = ApplicationStatus(application.status)
    role = actor.role if actor else None
    actor_id = actor.id if actor else None
    table = permission_service.get_permission_table()
    actions = []
    for target in TRANSITIONS.get(current, ()):
        check = validate_transition(application, target)
        if not (check.valid and table.can_edit(role, check.navigation_item)):
            continue
        if check.action == "submit" and actor_id != application.principal_investigator_id:
            continue
        actions.append({
            "action": check.action,
            "status": target.value,
            "navigation_item": check.navigation_item,
        })
    return actions


def expire_due_applications(now: datetime | None = None) -> dict:
    """
    Move every approved application whose expiration date has passed to
    expired.  Run from the ``expire-applications`` CLI command.

    Returns:
        {"expired": [protocol numbers], "errors": [...]}
    """
    now = ensure_utc(now) or datetime.now(timezone.utc)
    due = (
        ResearchApplication.query
        .filter(
            ResearchApplication.status == ApplicationStatus.APPROVED,
            ResearchApplication.expiration_date.isnot(None),
            ResearchApplication.expiration_date <= now,
        )
        .order_by(ResearchApplication.id)
        .all()
    )

    results = {"expired": [], "errors": []}
    for application_id in [a.id for a in due]:
        try:
            result = transition_application(
                application_id, ApplicationStatus.EXPIRED, SYSTEM_ACTOR,
                expected_status=ApplicationStatus.APPROVED,
                now=now,
                skip_permission=True,
            )
            results["expired"].append(result["protocol_number"])
        except (ConcurrentModification, InvalidTransition) as e:
            logger.warning("Expiry skipped for application %s: %s", application_id, e,
                           extra={"application_id": application_id, "event_type": "expiry_skipped"})
            results["errors"].append({
                "application_id": application_id,
                "error": str(e),
                "error_type": type(e).__name__,
            })

    logger.info("Expiry sweep: %d expired, %d skipped", len(results["expired"]), len(results["errors"]))
    return results


# ── Role-gated comments ──────────────────────────────────────────────────────


def _commit_comment(comment: ApplicationComment, actor: Actor) -> ApplicationComment:
    db.session.commit()
    logger.info(
        "%s added to application %s", comment.comment_type, comment.application_id,
        extra={"application_id": comment.application_id, "actor_id": actor.id,
               "event_type": "comment_added"},
    )
    return comment


def add_office_comment(application_id: int, text: str, actor: Actor) -> ApplicationComment:
    application = store.get_application(application_id)
    permission_service.require_full_access(
        actor.role, f"{application.navigation_prefix}-office", "comment",
    )
    try:
        comment = store.append_comment(
            application_id, CommentType.OFFICE_COMMENT, text, actor.id,
            author_name=actor.display_name,
        )
    except Exception:
        db.session.rollback()
        raise
    return _commit_comment(comment, actor)


def submit_reviewer_feedback(
    application_id: int,
    text: str,
    recommendation: str,
    actor: Actor,
    *,
    now: datetime | None = None,
) -> dict:
    """
    Record board feedback on an application under review.

    ``approve`` and ``reject`` recommendations also apply the matching
    transition in the same commit; revision requests leave the status as is.

    Returns:
        {"comment": {...}, "transition": {...} | None}
    """
    recommendation = (recommendation or "").strip().lower()
    if recommendation not in REVIEW_RECOMMENDATIONS:
        raise ValidationError(
            f"Invalid recommendation '{recommendation}'",
            details={"recommendation": sorted(REVIEW_RECOMMENDATIONS)},
        )

    application = store.get_application(application_id)
    permission_service.require_full_access(
        actor.role, f"{application.navigation_prefix}-reviewer", "review",
    )
    current = ApplicationStatus(application.status)
    if current is not ApplicationStatus.UNDER_REVIEW:
        raise InvalidTransition(current.value, current.value, "reviewer feedback requires 'under_review'")

    now = ensure_utc(now) or datetime.now(timezone.utc)
    transition = None
    try:
        comment = store.append_comment(
            application_id, CommentType.REVIEWER_FEEDBACK, text, actor.id,
            author_name=actor.display_name,
            recommendation=recommendation,
            created_at=now,
        )
        target = _RECOMMENDATION_TARGET.get(recommendation)
        if target is not None:
            transition = _apply_transition(
                application, target, actor,
                expected_status=ApplicationStatus.UNDER_REVIEW,
                comment=None,
                now=now,
                skip_permission=False,
            )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Reviewer feedback (%s) on application %s", recommendation, application_id,
        extra={"application_id": application_id, "actor_id": actor.id,
               "actor_role": actor.role, "event_type": "reviewer_feedback"},
    )
    return {"comment": comment.to_dict(), "transition": transition}


def add_pi_response(application_id: int, text: str, actor: Actor) -> ApplicationComment:
    application = store.get_application(application_id)
    navigation_item = f"{application.navigation_prefix}-applications"
    permission_service.require_full_access(actor.role, navigation_item, "respond")
    if actor.id != application.principal_investigator_id:
        raise Forbidden(actor.role, navigation_item, "respond (principal investigator only)")
    try:
        comment = store.append_comment(
            application_id, CommentType.PI_RESPONSE, text, actor.id,
            author_name=actor.display_name,
        )
    except Exception:
        db.session.rollback()
        raise
    return _commit_comment(comment, actor)


# ── Timeline ─────────────────────────────────────────────────────────────────

_MILESTONE_ENTRIES = (
    ("created_at", "Draft Created", "Protocol saved as draft", "file-text"),
    ("submission_date", "Submitted", "Application submitted for review", "send"),
    ("vetted_date", "Vetted", "Initial review completed", "eye"),
    ("under_review_date", "Under Review", "Assigned to board members", "eye"),
    ("approval_date", "Approved", "Protocol approved for implementation", "check-circle"),
    ("expiration_date", "Expires", "Protocol expiration date", "clock"),
)

_COMMENT_LABELS = {
    CommentType.OFFICE_COMMENT: "Office Comment",
    CommentType.REVIEWER_FEEDBACK: "Reviewer Feedback",
    CommentType.PI_RESPONSE: "PI Response",
}


@dataclass(frozen=True)
class TimelineEntry:
    timestamp: datetime
    kind: str
    key: str
    label: str
    description: str
    icon: str
    comment_id: int | None = None
    comment_type: str | None = None
    author_name: str | None = None
    text: str | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


def build_timeline(application, comments) -> tuple[TimelineEntry, ...]:
    """
    Merge milestone timestamps and comments into one chronological sequence.

    status_change comments are dropped; milestones already show them.  Ties
    keep input order (milestones first, then comments as given).
    """
    entries = []
    for key, label, description, icon in _MILESTONE_ENTRIES:
        value = ensure_utc(getattr(application, key, None))
        if value is not None:
            entries.append(TimelineEntry(value, "status", key, label, description, icon))

    for comment in comments:
        comment_type = CommentType.parse(comment.comment_type)
        if comment_type is CommentType.STATUS_CHANGE:
            continue
        created_at = ensure_utc(comment.created_at)
        if created_at is None:
            continue
        entries.append(TimelineEntry(
            created_at,
            "comment",
            f"comment-{comment.id}",
            _COMMENT_LABELS.get(comment_type, "Comment"),
            comment.comment,
            "message-circle",
            comment_id=comment.id,
            comment_type=comment_type.value,
            author_name=comment.author_name,
            text=comment.comment,
        ))

    return tuple(sorted(entries, key=lambda entry: entry.timestamp))
