"""
Research Administration Portal
Role permission model and navigation catalog.

Models:
    - RolePermission: (job_title, navigation_item) → access_level.

The catalog (JOB_TITLES, NAVIGATION_ITEMS) is fixed at import time and never
mutated; services/permission_service.py seeds and resolves against it.
"""

from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType

from research_portal.core.exceptions import ValidationError
from research_portal.models import db


class AccessLevel(str, Enum):
    HIDDEN = "hidden"
    READONLY = "readonly"
    FULL = "full"

    @classmethod
    def parse(cls, value) -> "AccessLevel":
        """Coerce input, accepting the legacy UI names hide / view / edit."""
        if isinstance(value, cls):
            return value
        raw = str(value or "").strip().lower().replace("-", "").replace("_", "")
        raw = _ACCESS_ALIASES.get(raw, raw)
        try:
            return cls(raw)
        except ValueError:
            raise ValidationError(
                f"Invalid access_level '{value}'",
                details={"access_level": [m.value for m in cls]},
            ) from None


_ACCESS_ALIASES = MappingProxyType({
    "hide": "hidden",
    "view": "readonly",
    "edit": "full",
})


# ── Navigation catalog ───────────────────────────────────────────────────────

JOB_TITLES = (
    "Investigator",
    "Staff Scientist",
    "Physician",
    "Research Scientist",
    "Lab Manager",
    "Postdoctoral Researcher",
    "PhD Student",
    "Management",
    "IRB Office",
    "IRB Reviewer",
    "IBC Office",
    "IBC Reviewer",
)

NAVIGATION_ITEMS = (
    "dashboard",
    "scientists",
    "facilities",
    "programs",
    "projects",
    "research-activities",
    "irb-applications",
    "irb-office",
    "irb-reviewer",
    "ibc-applications",
    "ibc-office",
    "ibc-reviewer",
    "data-management",
    "contracts",
    "grants",
    "publications",
    "patents",
    "reports",
    "settings",
)

OFFICE_ITEMS = frozenset(item for item in NAVIGATION_ITEMS if item.endswith("-office"))
REVIEWER_ITEMS = frozenset(item for item in NAVIGATION_ITEMS if item.endswith("-reviewer"))


def default_access_for(job_title: str, navigation_item: str) -> AccessLevel | None:
    """Institutional default for a catalog pair, or None to leave it unset."""
    if job_title == "Investigator":
        if navigation_item in OFFICE_ITEMS or navigation_item in REVIEWER_ITEMS:
            return AccessLevel.HIDDEN
        if navigation_item == "reports":
            return AccessLevel.READONLY

    if job_title == "PhD Student":
        if (navigation_item in OFFICE_ITEMS or navigation_item in REVIEWER_ITEMS
                or navigation_item in ("contracts", "patents")):
            return AccessLevel.HIDDEN
        if navigation_item in ("reports", "programs"):
            return AccessLevel.READONLY

    # Board staff: full on their own desk, read-only on the sibling desk
    for board in ("irb", "ibc"):
        if job_title == f"{board.upper()} Office":
            if navigation_item == f"{board}-office":
                return AccessLevel.FULL
            if navigation_item == f"{board}-reviewer":
                return AccessLevel.READONLY
        if job_title == f"{board.upper()} Reviewer":
            if navigation_item == f"{board}-reviewer":
                return AccessLevel.FULL
            if navigation_item == f"{board}-office":
                return AccessLevel.READONLY

    return None


class RolePermission(db.Model):
    """One access rule per (job title, navigation item) pair."""

    __tablename__ = "role_permissions"
    __table_args__ = (
        db.UniqueConstraint("job_title", "navigation_item", name="uq_role_permission_pair"),
    )

    id = db.Column(db.Integer, primary_key=True)
    job_title = db.Column(db.String(100), nullable=False, index=True)
    navigation_item = db.Column(db.String(100), nullable=False)
    access_level = db.Column(
        db.Enum(
            AccessLevel,
            native_enum=False,
            length=10,
            validate_strings=True,
            values_callable=lambda members: [m.value for m in members],
            name="accesslevel_enum",
        ),
        nullable=False,
    )
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "job_title": self.job_title,
            "navigation_item": self.navigation_item,
            "access_level": AccessLevel(self.access_level).value,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<RolePermission {self.job_title}/{self.navigation_item}={self.access_level}>"
