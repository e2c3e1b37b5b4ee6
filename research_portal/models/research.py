"""
Research Administration Portal
Reference domain models.

Models:
    - Scientist: investigators, staff scientists and office members.
      Principal investigators of applications point here.
    - ResearchActivity: an SDR (scientific data record) that regulatory
      applications are filed for.
"""

from datetime import datetime, timezone

from research_portal.models import db


class Scientist(db.Model):
    """A person who can own or act on regulatory applications."""

    __tablename__ = "scientists"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True)
    job_title = db.Column(
        db.String(100), nullable=True,
        comment="Investigator | Staff Scientist | PhD Student | IRB Office | ...",
    )
    department = db.Column(db.String(150), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "job_title": self.job_title,
            "department": self.department,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Scientist {self.id}: {self.name}>"


class ResearchActivity(db.Model):
    """SDR: the research activity an IRB/IBC application covers."""

    __tablename__ = "research_activities"

    id = db.Column(db.Integer, primary_key=True)
    sdr_number = db.Column(db.String(50), nullable=False, unique=True)
    title = db.Column(db.String(300), nullable=False)
    status = db.Column(db.String(30), nullable=False, default="planning")
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sdr_number": self.sdr_number,
            "title": self.title,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ResearchActivity {self.id}: {self.sdr_number}>"
