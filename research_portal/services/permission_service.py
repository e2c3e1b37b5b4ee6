"""
Permission Service: role × navigation-item access resolution with cache.

Answers "can this job title see / edit this navigation item?".

Evaluation:
  - an explicit RolePermission row wins
  - otherwise the configured default applies (PERMISSION_DEFAULT_ACCESS,
    "full" unless the deployment opts into fail-closed "hidden")
  - unknown navigation items are not an error; they simply have no row

Reads go through an immutable PermissionTable snapshot that is cached for
PERMISSION_CACHE_TTL seconds and dropped on every write.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from flask import current_app

from research_portal.core.exceptions import Forbidden, ValidationError
from research_portal.models import db
from research_portal.models.permission import (
    JOB_TITLES,
    NAVIGATION_ITEMS,
    AccessLevel,
    RolePermission,
    default_access_for,
)

logger = logging.getLogger(__name__)

_cache_lock = threading.Lock()
_cached_table: tuple[float, "PermissionTable"] | None = None


@dataclass(frozen=True)
class PermissionTable:
    """Immutable (job_title, navigation_item) → AccessLevel lookup."""

    rules: Mapping[tuple[str, str], AccessLevel] = field(default_factory=dict)
    default: AccessLevel = AccessLevel.FULL

    @classmethod
    def from_rows(cls, rows, default: AccessLevel) -> "PermissionTable":
        rules = {
            (row.job_title, row.navigation_item): AccessLevel(row.access_level)
            for row in rows
        }
        return cls(rules=MappingProxyType(rules), default=default)

    def resolve(self, role: str | None, navigation_item: str) -> AccessLevel:
        return self.rules.get((role or "", navigation_item), self.default)

    def is_hidden(self, role: str | None, navigation_item: str) -> bool:
        return self.resolve(role, navigation_item) is AccessLevel.HIDDEN

    def is_read_only(self, role: str | None, navigation_item: str) -> bool:
        return self.resolve(role, navigation_item) is AccessLevel.READONLY

    def can_view(self, role: str | None, navigation_item: str) -> bool:
        return self.resolve(role, navigation_item) is not AccessLevel.HIDDEN

    def can_edit(self, role: str | None, navigation_item: str) -> bool:
        return self.resolve(role, navigation_item) is AccessLevel.FULL


# ── Snapshot cache ───────────────────────────────────────────────────────────


def default_access_level() -> AccessLevel:
    """Configured level for pairs without a row."""
    return AccessLevel.parse(current_app.config.get("PERMISSION_DEFAULT_ACCESS", "full"))


def invalidate_cache() -> None:
    global _cached_table
    with _cache_lock:
        _cached_table = None


def get_permission_table() -> PermissionTable:
    """Return the current snapshot, reloading it when stale."""
    global _cached_table
    ttl = current_app.config.get("PERMISSION_CACHE_TTL", 300)
    with _cache_lock:
        if _cached_table is not None and time.time() - _cached_table[0] <= ttl:
            return _cached_table[1]

    table = PermissionTable.from_rows(RolePermission.query.all(), default_access_level())
    with _cache_lock:
        _cached_table = (time.time(), table)
    return table


# ── Resolver API ─────────────────────────────────────────────────────────────


def resolve(role: str | None, navigation_item: str) -> AccessLevel:
    return get_permission_table().resolve(role, navigation_item)


def is_hidden(role: str | None, navigation_item: str) -> bool:
    return get_permission_table().is_hidden(role, navigation_item)


def is_read_only(role: str | None, navigation_item: str) -> bool:
    return get_permission_table().is_read_only(role, navigation_item)


def can_edit(role: str | None, navigation_item: str) -> bool:
    return get_permission_table().can_edit(role, navigation_item)


def require_full_access(role: str | None, navigation_item: str, action: str | None = None) -> None:
    """Raise Forbidden unless *role* has full access to *navigation_item*."""
    level = resolve(role, navigation_item)
    if level is not AccessLevel.FULL:
        logger.warning(
            "Role %r denied %s on %s (access=%s)",
            role, action or "write", navigation_item, level.value,
            extra={"actor_role": role, "event_type": "permission_denied"},
        )
        raise Forbidden(role, navigation_item, action)


def navigation_for_role(role: str | None) -> dict[str, str]:
    """Effective access level for every catalog navigation item."""
    table = get_permission_table()
    return {item: table.resolve(role, item).value for item in NAVIGATION_ITEMS}


# ── Table maintenance ────────────────────────────────────────────────────────


def list_permissions(job_title: str | None = None) -> list[RolePermission]:
    q = RolePermission.query
    if job_title:
        q = q.filter_by(job_title=job_title)
    return q.order_by(RolePermission.job_title, RolePermission.navigation_item).all()


def _validate_entry(entry) -> tuple[str, str, AccessLevel]:
    if not isinstance(entry, dict):
        raise ValidationError("Entry must be an object")
    for name in ("job_title", "navigation_item"):
        if not isinstance(entry.get(name) or "", str):
            raise ValidationError(f"{name} must be a string", details={name: "not a string"})
    job_title = (entry.get("job_title") or "").strip()
    navigation_item = (entry.get("navigation_item") or "").strip()
    if not job_title:
        raise ValidationError("job_title is required", details={"job_title": "required"})
    if navigation_item not in NAVIGATION_ITEMS:
        raise ValidationError(
            f"Unknown navigation_item '{navigation_item}'",
            details={"navigation_item": "not in catalog"},
        )
    return job_title, navigation_item, AccessLevel.parse(entry.get("access_level"))


def _upsert(job_title: str, navigation_item: str, level: AccessLevel) -> RolePermission:
    row = RolePermission.query.filter_by(job_title=job_title, navigation_item=navigation_item).first()
    if row is None:
        row = RolePermission(job_title=job_title, navigation_item=navigation_item, access_level=level)
        db.session.add(row)
    else:
        row.access_level = level
    db.session.flush()
    return row


def update_permissions_bulk(entries: list) -> dict:
    """
    Upsert many (job_title, navigation_item, access_level) entries.

    Partial success allowed: invalid entries are reported and skipped,
    valid ones are applied and committed together.

    Returns:
        {"updated": [{"index", **row}], "errors": [{"index", "entry", "error", "error_type"}]}
    """
    results = {"updated": [], "errors": []}

    for index, entry in enumerate(entries or []):
        try:
            job_title, navigation_item, level = _validate_entry(entry)
        except ValidationError as e:
            results["errors"].append({
                "index": index,
                "entry": entry,
                "error": str(e),
                "error_type": type(e).__name__,
            })
            continue
        row = _upsert(job_title, navigation_item, level)
        results["updated"].append({"index": index, **row.to_dict()})

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    finally:
        invalidate_cache()

    logger.info(
        "Bulk permission update: %d applied, %d rejected",
        len(results["updated"]), len(results["errors"]),
    )
    return results


def seed_default_permissions() -> int:
    """Insert institutional defaults for catalog pairs that have no row.

    Idempotent; existing rows are never overwritten.  Returns the number
    of rows created.
    """
    existing = {
        (row.job_title, row.navigation_item)
        for row in RolePermission.query.all()
    }
    created = 0
    for job_title in JOB_TITLES:
        for navigation_item in NAVIGATION_ITEMS:
            if (job_title, navigation_item) in existing:
                continue
            level = default_access_for(job_title, navigation_item)
            if level is None:
                continue
            db.session.add(RolePermission(
                job_title=job_title,
                navigation_item=navigation_item,
                access_level=level,
            ))
            created += 1
    db.session.commit()
    invalidate_cache()
    logger.info("Seeded %d default role permissions", created)
    return created
