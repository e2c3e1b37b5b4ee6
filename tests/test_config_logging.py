"""Configuration classes and structured logging."""

import json
import logging

import pytest
from flask import g

from research_portal import create_app
from research_portal.auth import Actor
from research_portal.config import ProductionConfig, TestingConfig
from research_portal.middleware.logging_config import (
    JSONFormatter,
    ReadableFormatter,
    RequestContextFilter,
)


class TestConfig:

    def test_testing_config(self, app):
        assert app.config["TESTING"] is True
        assert app.config["SQLALCHEMY_DATABASE_URI"] == TestingConfig.SQLALCHEMY_DATABASE_URI
        assert app.config["APPROVAL_PERIOD_DAYS"] == 365
        assert app.config["PERMISSION_DEFAULT_ACCESS"] == "full"

    def test_production_requires_database_url(self, monkeypatch):
        monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", None)
        with pytest.raises(RuntimeError):
            ProductionConfig()

    def test_invalid_permission_default_fails_startup(self, monkeypatch):
        monkeypatch.setattr(TestingConfig, "PERMISSION_DEFAULT_ACCESS", "everything")
        with pytest.raises(RuntimeError):
            create_app("testing")


class TestJSONFormatter:

    def test_includes_workflow_extras(self):
        record = logging.LogRecord(
            "research_portal.services.workflow_engine", logging.INFO, __file__, 1,
            "Application %s approved", ("IRB-2026-001",), None,
        )
        record.application_id = 7
        record.event_type = "status_transition"

        payload = json.loads(JSONFormatter().format(record))

        assert payload["message"] == "Application IRB-2026-001 approved"
        assert payload["application_id"] == 7
        assert payload["event_type"] == "status_transition"
        assert payload["level"] == "INFO"


def _record(message="Vetted", **extra):
    record = logging.LogRecord("research_portal.test", logging.INFO, __file__, 1, message, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestRequestContextFilter:

    def test_tags_records_with_request_actor(self, app):
        with app.test_request_context("/api/v1/applications"):
            g.request_id = "req-1"
            g.actor = Actor(role="IRB Office", id=4242, name="Dana")
            record = _record(application_id=7)

            assert RequestContextFilter().filter(record) is True

        payload = json.loads(JSONFormatter().format(record))
        assert payload["request_id"] == "req-1"
        assert payload["actor_id"] == 4242
        assert payload["actor_role"] == "IRB Office"
        assert "[app=7] [as=IRB Office]" in ReadableFormatter().format(record)

    def test_explicit_extras_win(self, app):
        with app.test_request_context("/api/v1/applications"):
            g.actor = Actor(role="IRB Office", id=4242)
            record = _record(actor_id=1, actor_role="System")
            RequestContextFilter().filter(record)

        assert (record.actor_id, record.actor_role) == (1, "System")

    def test_outside_request_leaves_record_alone(self):
        record = _record()
        assert RequestContextFilter().filter(record) is True
        assert not hasattr(record, "actor_role")
