"""
Research Administration Portal
Current-actor context.

Provides:
    - Actor: immutable identity of the caller (scientist id, job title, name)
    - init_actor_context(app): before_request hook that populates g.actor
    - require_actor: decorator for endpoints that change state
    - CSRF mitigation for state-changing requests (JSON Content-Type only)

Session handling lives in front of this application (SSO proxy / gateway).
It forwards the authenticated identity in three headers:

    X-Actor-Id     - actor id (integer; the scientist id for investigators,
                     any gateway id or none for office and board staff)
    X-Actor-Role   - job title, e.g. "Investigator", "IRB Office"
    X-Actor-Name   - display name recorded on comments
"""

import functools
import logging
from dataclasses import dataclass

from flask import g, jsonify, request

from research_portal.utils.errors import E, api_error

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """The caller performing an action."""

    role: str
    id: int | None = None
    name: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.role


SYSTEM_ACTOR = Actor(role="System", id=None, name="System")


def _actor_from_headers() -> Actor | None:
    role = request.headers.get("X-Actor-Role", "").strip()
    if not role:
        return None
    raw_id = request.headers.get("X-Actor-Id", "").strip()
    actor_id = None
    if raw_id:
        try:
            actor_id = int(raw_id)
        except ValueError:
            logger.warning("Ignoring non-integer X-Actor-Id header: %r", raw_id[:20])
    name = request.headers.get("X-Actor-Name", "").strip() or None
    return Actor(role=role, id=actor_id, name=name)


def current_actor() -> Actor | None:
    """Return the actor for the current request (None when anonymous)."""
    return getattr(g, "actor", None)


def require_actor(f):
    """Decorator: reject the request with 401 when no actor context is present."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if current_actor() is None:
            return api_error(E.UNAUTHENTICATED, "Actor context required. Provide X-Actor-Role header.")
        return f(*args, **kwargs)
    return decorated


def _check_content_type():
    """
    For state-changing requests (POST/PUT/PATCH/DELETE), require
    Content-Type: application/json. HTML forms cannot send that content type.
    """
    if request.method in ("POST", "PUT", "PATCH", "DELETE"):
        ct = request.content_type or ""
        if "application/json" not in ct and request.content_length and request.content_length > 0:
            return jsonify({
                "error": "Content-Type must be application/json for state-changing requests"
            }), 415
    return None


def init_actor_context(app):
    """Install the actor-context hook on the Flask app."""

    @app.before_request
    def _before_request_actor():
        g.actor = None
        if not request.path.startswith("/api/v1/"):
            return None
        if request.method == "OPTIONS":
            return None

        csrf_error = _check_content_type()
        if csrf_error:
            return csrf_error

        g.actor = _actor_from_headers()
        return None

    logger.debug("Actor context middleware installed")
