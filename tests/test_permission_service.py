"""
Role permission resolver tests.

Covers the immutable PermissionTable, the configured default for absent
pairs, bulk upserts with partial success, institutional seeding and the
snapshot cache.
"""

from types import MappingProxyType

import pytest

from research_portal.core.exceptions import Forbidden, ValidationError
from research_portal.models.permission import NAVIGATION_ITEMS, AccessLevel, RolePermission
from research_portal.services import permission_service as ps
from research_portal.services.permission_service import PermissionTable


class TestPermissionTable:

    def test_lookup_and_predicates(self):
        table = PermissionTable(
            rules=MappingProxyType({
                ("PhD Student", "contracts"): AccessLevel.HIDDEN,
                ("PhD Student", "reports"): AccessLevel.READONLY,
            }),
            default=AccessLevel.FULL,
        )
        assert table.is_hidden("PhD Student", "contracts")
        assert not table.can_view("PhD Student", "contracts")
        assert table.is_read_only("PhD Student", "reports")
        assert table.can_view("PhD Student", "reports")
        assert not table.can_edit("PhD Student", "reports")
        assert table.resolve("PhD Student", "grants") is AccessLevel.FULL

    def test_unknown_navigation_item_is_not_an_error(self):
        table = PermissionTable(default=AccessLevel.FULL)
        assert table.resolve("Investigator", "no-such-screen") is AccessLevel.FULL
        assert table.resolve(None, "dashboard") is AccessLevel.FULL


class TestAccessLevelParsing:

    @pytest.mark.parametrize("raw,expected", [
        ("hidden", AccessLevel.HIDDEN),
        ("hide", AccessLevel.HIDDEN),
        ("view", AccessLevel.READONLY),
        ("read-only", AccessLevel.READONLY),
        ("READONLY", AccessLevel.READONLY),
        ("edit", AccessLevel.FULL),
        ("full", AccessLevel.FULL),
    ])
    def test_accepts_values_and_legacy_names(self, raw, expected):
        assert AccessLevel.parse(raw) is expected

    def test_rejects_unknown(self):
        with pytest.raises(ValidationError):
            AccessLevel.parse("admin")


class TestResolve:

    def test_absent_pair_defaults_to_full(self):
        assert ps.resolve("Investigator", "irb-office") is AccessLevel.FULL
        assert not ps.is_hidden("Investigator", "irb-office")
        assert not ps.is_read_only("Investigator", "irb-office")

    def test_default_can_be_fail_closed(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "PERMISSION_DEFAULT_ACCESS", "hidden")
        ps.invalidate_cache()

        assert ps.resolve("Investigator", "irb-office") is AccessLevel.HIDDEN
        assert ps.is_hidden("Investigator", "dashboard")

    def test_explicit_entry_wins(self):
        ps.update_permissions_bulk([
            {"job_title": "Investigator", "navigation_item": "reports", "access_level": "readonly"},
        ])
        assert ps.is_read_only("Investigator", "reports")
        assert ps.resolve("Staff Scientist", "reports") is AccessLevel.FULL

    def test_require_full_access(self):
        ps.update_permissions_bulk([
            {"job_title": "IRB Office", "navigation_item": "irb-reviewer", "access_level": "view"},
        ])
        with pytest.raises(Forbidden) as exc:
            ps.require_full_access("IRB Office", "irb-reviewer", "approve")
        assert exc.value.navigation_item == "irb-reviewer"
        ps.require_full_access("IRB Office", "irb-office", "vet")

    def test_navigation_for_role_covers_catalog(self):
        ps.seed_default_permissions()
        navigation = ps.navigation_for_role("PhD Student")

        assert list(navigation) == list(NAVIGATION_ITEMS)
        assert navigation["patents"] == "hidden"
        assert navigation["programs"] == "readonly"
        assert navigation["dashboard"] == "full"


class TestBulkUpdate:

    def test_partial_success_reports_each_entry(self):
        result = ps.update_permissions_bulk([
            {"job_title": "Investigator", "navigation_item": "irb-office", "access_level": "hide"},
            {"job_title": "Investigator", "navigation_item": "nowhere", "access_level": "full"},
            {"job_title": "Investigator", "navigation_item": "grants", "access_level": "admin"},
            {"job_title": "", "navigation_item": "grants", "access_level": "full"},
            "not-an-object",
            {"job_title": "Lab Manager", "navigation_item": "grants", "access_level": "readonly"},
        ])

        assert [u["index"] for u in result["updated"]] == [0, 5]
        assert [e["index"] for e in result["errors"]] == [1, 2, 3, 4]
        assert all(e["error_type"] == "ValidationError" for e in result["errors"])
        assert RolePermission.query.count() == 2
        assert ps.is_hidden("Investigator", "irb-office")

    def test_non_string_fields_are_reported_per_entry(self):
        result = ps.update_permissions_bulk([
            {"job_title": "Lab Manager", "navigation_item": "grants", "access_level": "readonly"},
            {"job_title": 5, "navigation_item": "grants", "access_level": "full"},
            {"job_title": "Lab Manager", "navigation_item": ["reports"], "access_level": "full"},
        ])

        assert [u["index"] for u in result["updated"]] == [0]
        assert [(e["index"], e["error_type"]) for e in result["errors"]] == [
            (1, "ValidationError"), (2, "ValidationError"),
        ]
        assert ps.is_read_only("Lab Manager", "grants")

    def test_upsert_updates_existing_row(self):
        entry = {"job_title": "Lab Manager", "navigation_item": "grants", "access_level": "readonly"}
        ps.update_permissions_bulk([entry])
        ps.update_permissions_bulk([{**entry, "access_level": "hidden"}])

        rows = ps.list_permissions(job_title="Lab Manager")
        assert len(rows) == 1
        assert rows[0].access_level is AccessLevel.HIDDEN

    def test_duplicate_pair_in_one_batch_keeps_last(self):
        ps.update_permissions_bulk([
            {"job_title": "Physician", "navigation_item": "patents", "access_level": "hidden"},
            {"job_title": "Physician", "navigation_item": "patents", "access_level": "full"},
        ])
        assert RolePermission.query.filter_by(job_title="Physician").count() == 1
        assert ps.resolve("Physician", "patents") is AccessLevel.FULL


class TestSeedDefaults:

    def test_seed_is_idempotent(self):
        created = ps.seed_default_permissions()
        assert created > 0
        assert ps.seed_default_permissions() == 0
        assert RolePermission.query.count() == created

    def test_institutional_defaults(self):
        ps.seed_default_permissions()

        assert ps.is_hidden("Investigator", "irb-office")
        assert ps.is_hidden("Investigator", "ibc-reviewer")
        assert ps.is_read_only("Investigator", "reports")
        assert ps.is_hidden("PhD Student", "contracts")
        assert ps.resolve("IRB Office", "irb-office") is AccessLevel.FULL
        assert ps.resolve("IBC Reviewer", "ibc-reviewer") is AccessLevel.FULL
        assert ps.is_read_only("IBC Reviewer", "ibc-office")

    def test_seed_does_not_overwrite_existing_rows(self):
        ps.update_permissions_bulk([
            {"job_title": "Investigator", "navigation_item": "reports", "access_level": "full"},
        ])
        ps.seed_default_permissions()
        assert ps.resolve("Investigator", "reports") is AccessLevel.FULL


class TestSnapshotCache:

    def test_snapshot_is_reused_within_ttl(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "PERMISSION_CACHE_TTL", 300)
        ps.invalidate_cache()

        first = ps.get_permission_table()
        assert ps.get_permission_table() is first

    def test_write_invalidates_snapshot(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "PERMISSION_CACHE_TTL", 300)
        ps.invalidate_cache()
        before = ps.get_permission_table()

        ps.update_permissions_bulk([
            {"job_title": "Management", "navigation_item": "settings", "access_level": "readonly"},
        ])

        after = ps.get_permission_table()
        assert after is not before
        assert after.is_read_only("Management", "settings")
