"""Scientist and research-activity (SDR) reference data."""

import logging

from research_portal.core.exceptions import ConflictError, NotFoundError, ValidationError
from research_portal.models import db
from research_portal.models.research import ResearchActivity, Scientist

logger = logging.getLogger(__name__)


def _clean(value) -> str:
    return str(value or "").strip()


def create_scientist(data: dict) -> Scientist:
    name = _clean(data.get("name"))
    email = _clean(data.get("email")).lower()
    if not name or not email:
        raise ValidationError("name and email are required",
                              details={"name": bool(name), "email": bool(email)})
    if Scientist.query.filter_by(email=email).first():
        raise ConflictError("Scientist", "email", email)

    scientist = Scientist(
        name=name,
        email=email,
        job_title=_clean(data.get("job_title")) or None,
        department=_clean(data.get("department")) or None,
    )
    db.session.add(scientist)
    db.session.commit()
    logger.info("Scientist created: id=%s email=%s", scientist.id, email)
    return scientist


def get_scientist(scientist_id: int) -> Scientist:
    scientist = db.session.get(Scientist, scientist_id)
    if scientist is None:
        raise NotFoundError("Scientist", scientist_id)
    return scientist


def list_scientists(job_title: str | None = None) -> list[Scientist]:
    q = Scientist.query
    if job_title:
        q = q.filter_by(job_title=job_title)
    return q.order_by(Scientist.name).all()


def create_research_activity(data: dict) -> ResearchActivity:
    sdr_number = _clean(data.get("sdr_number"))
    title = _clean(data.get("title"))
    if not sdr_number or not title:
        raise ValidationError("sdr_number and title are required")
    if ResearchActivity.query.filter_by(sdr_number=sdr_number).first():
        raise ConflictError("ResearchActivity", "sdr_number", sdr_number)

    activity = ResearchActivity(
        sdr_number=sdr_number,
        title=title,
        status=_clean(data.get("status")) or "planning",
    )
    db.session.add(activity)
    db.session.commit()
    logger.info("Research activity created: id=%s sdr=%s", activity.id, sdr_number)
    return activity


def get_research_activity(activity_id: int) -> ResearchActivity:
    activity = db.session.get(ResearchActivity, activity_id)
    if activity is None:
        raise NotFoundError("ResearchActivity", activity_id)
    return activity


def list_research_activities() -> list[ResearchActivity]:
    return ResearchActivity.query.order_by(ResearchActivity.sdr_number).all()
