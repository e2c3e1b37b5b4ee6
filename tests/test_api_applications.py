"""
HTTP tests for the regulatory application blueprint.

Exercises the full request path: actor headers → blueprint → services →
error mapping (401 / 403 / 404 / 409 / 422).
"""

import pytest

from research_portal.models import db
from research_portal.models.research import ResearchActivity

BASE = "/api/v1/applications"

OFFICE = {"X-Actor-Role": "IRB Office", "X-Actor-Name": "Dana Office"}
REVIEWER = {"X-Actor-Role": "IRB Reviewer", "X-Actor-Name": "Rex Reviewer"}


def _pi_headers(pi_scientist):
    return {
        "X-Actor-Role": "Investigator",
        "X-Actor-Id": str(pi_scientist.id),
        "X-Actor-Name": pi_scientist.name,
    }


def _create(client, pi_scientist, application_type="irb", **extra):
    res = client.post(
        BASE,
        json={
            "application_type": application_type,
            "title": "Sleep and memory",
            "principal_investigator_id": pi_scientist.id,
            **extra,
        },
        headers=_pi_headers(pi_scientist),
    )
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _move(client, application_id, status, headers, **extra):
    return client.post(
        f"{BASE}/{application_id}/transition",
        json={"status": status, **extra},
        headers=headers,
    )


def _to_under_review(client, pi_scientist, application_id):
    assert _move(client, application_id, "submitted", _pi_headers(pi_scientist)).status_code == 200
    assert _move(client, application_id, "vetted", OFFICE).status_code == 200
    assert _move(client, application_id, "under_review", OFFICE).status_code == 200


class TestApplicationCrud:

    def test_create_requires_actor(self, client, pi_scientist):
        res = client.post(BASE, json={
            "application_type": "irb", "title": "x", "principal_investigator_id": pi_scientist.id,
        })
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"

    def test_create_and_get(self, client, pi_scientist):
        created = _create(client, pi_scientist)

        assert created["status"] == "draft"
        assert created["protocol_number"].startswith("IRB-")
        assert created["principal_investigator_name"] == "Ada Lovelace"

        res = client.get(f"{BASE}/{created['id']}")
        assert res.status_code == 200
        assert res.get_json()["protocol_number"] == created["protocol_number"]

    def test_create_missing_fields_is_400(self, client, pi_scientist):
        res = client.post(BASE, json={"application_type": "irb"}, headers=_pi_headers(pi_scientist))
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_create_with_unknown_type_is_422(self, client, pi_scientist):
        res = client.post(
            BASE,
            json={"application_type": "iacuc", "title": "x", "principal_investigator_id": pi_scientist.id},
            headers=_pi_headers(pi_scientist),
        )
        assert res.status_code == 422

    def test_get_missing_is_404(self, client):
        res = client.get(f"{BASE}/9999")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_list_with_filters(self, client, pi_scientist):
        _create(client, pi_scientist, "irb")
        _create(client, pi_scientist, "ibc")

        res = client.get(f"{BASE}?application_type=ibc")
        body = res.get_json()
        assert body["total"] == 1
        assert body["items"][0]["application_type"] == "ibc"

    def test_delete_draft(self, client, pi_scientist):
        created = _create(client, pi_scientist)
        res = client.delete(f"{BASE}/{created['id']}", headers=_pi_headers(pi_scientist))
        assert res.status_code == 200
        assert client.get(f"{BASE}/{created['id']}").status_code == 404

    def test_delete_submitted_is_422(self, client, pi_scientist):
        created = _create(client, pi_scientist)
        _move(client, created["id"], "submitted", _pi_headers(pi_scientist))
        res = client.delete(f"{BASE}/{created['id']}", headers=_pi_headers(pi_scientist))
        assert res.status_code == 422

    def test_form_posts_are_rejected(self, client, pi_scientist):
        res = client.post(
            BASE, data="title=x", content_type="application/x-www-form-urlencoded",
            headers=_pi_headers(pi_scientist),
        )
        assert res.status_code == 415


class TestTransitionEndpoint:

    def test_full_lifecycle(self, client, pi_scientist):
        created = _create(client, pi_scientist)
        _to_under_review(client, pi_scientist, created["id"])

        res = _move(client, created["id"], "active", REVIEWER, expected_status="under_review")

        assert res.status_code == 200
        body = res.get_json()
        assert body["previous_status"] == "under_review"
        assert body["new_status"] == "approved"
        assert body["application"]["approval_date"] is not None
        assert body["application"]["expiration_date"] is not None

    def test_invalid_transition_is_409(self, client, pi_scientist):
        created = _create(client, pi_scientist)
        res = _move(client, created["id"], "approved", REVIEWER)
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_INVALID_TRANSITION"
        assert body["details"] == {"from": "draft", "to": "approved"}

    def test_stale_expected_status_is_409(self, client, pi_scientist):
        created = _create(client, pi_scientist)
        _move(client, created["id"], "submitted", _pi_headers(pi_scientist))

        res = _move(client, created["id"], "vetted", OFFICE, expected_status="draft")

        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONCURRENT_MODIFICATION"

    def test_forbidden_is_403(self, client, pi_scientist):
        client.put(
            "/api/v1/permissions",
            json={"entries": [{"job_title": "Investigator", "navigation_item": "irb-office",
                               "access_level": "hidden"}]},
            headers=OFFICE,
        )
        created = _create(client, pi_scientist)
        _move(client, created["id"], "submitted", _pi_headers(pi_scientist))

        res = _move(client, created["id"], "vetted", _pi_headers(pi_scientist))

        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"

    def test_office_actor_id_need_not_be_a_scientist(self, client, pi_scientist):
        created = _create(client, pi_scientist)
        _move(client, created["id"], "submitted", _pi_headers(pi_scientist))

        res = _move(client, created["id"], "vetted", {**OFFICE, "X-Actor-Id": "4242"}, comment="Complete")

        assert res.status_code == 200
        comments = client.get(f"{BASE}/{created['id']}/comments").get_json()["items"]
        assert [c["author_id"] for c in comments[-2:]] == [4242, 4242]
        assert comments[-1]["comment_type"] == "office_comment"

    def test_missing_status_is_400(self, client, pi_scientist):
        created = _create(client, pi_scientist)
        res = client.post(f"{BASE}/{created['id']}/transition", json={}, headers=OFFICE)
        assert res.status_code == 400

    def test_unknown_status_is_422(self, client, pi_scientist):
        created = _create(client, pi_scientist)
        res = _move(client, created["id"], "pending", OFFICE)
        assert res.status_code == 422

    def test_batch_reports_partial_success(self, client, pi_scientist):
        first = _create(client, pi_scientist)
        second = _create(client, pi_scientist)
        _move(client, second["id"], "submitted", _pi_headers(pi_scientist))

        res = client.post(
            f"{BASE}/transition",
            json={"ids": [first["id"], second["id"]], "status": "submitted"},
            headers=_pi_headers(pi_scientist),
        )

        assert res.status_code == 207
        body = res.get_json()
        assert len(body["success"]) == 1
        assert body["errors"][0]["error_type"] == "InvalidTransition"

    def test_available_actions_for_actor(self, client, pi_scientist):
        created = _create(client, pi_scientist)
        res = client.get(f"{BASE}/{created['id']}/actions", headers=_pi_headers(pi_scientist))
        assert res.get_json()["actions"] == [
            {"action": "submit", "status": "submitted", "navigation_item": "irb-applications"},
        ]


class TestCommentsAndTimeline:

    def test_office_comment_and_pi_response(self, client, pi_scientist):
        created = _create(client, pi_scientist)

        res = client.post(
            f"{BASE}/{created['id']}/comments",
            json={"comment_type": "office_comment", "comment": "Attach consent form"},
            headers=OFFICE,
        )
        assert res.status_code == 201
        assert res.get_json()["author_type"] == "office"

        res = client.post(
            f"{BASE}/{created['id']}/comments",
            json={"comment_type": "pi_response", "comment": "Attached"},
            headers=_pi_headers(pi_scientist),
        )
        assert res.status_code == 201

        listed = client.get(f"{BASE}/{created['id']}/comments").get_json()
        assert [c["comment_type"] for c in listed["items"]] == ["office_comment", "pi_response"]

    def test_status_change_comments_cannot_be_posted(self, client, pi_scientist):
        created = _create(client, pi_scientist)
        res = client.post(
            f"{BASE}/{created['id']}/comments",
            json={"comment_type": "status_change", "comment": "sneaky"},
            headers=OFFICE,
        )
        assert res.status_code == 422

    def test_reviewer_feedback_approve(self, client, pi_scientist):
        created = _create(client, pi_scientist)
        _to_under_review(client, pi_scientist, created["id"])

        res = client.post(
            f"{BASE}/{created['id']}/reviewer-feedback",
            json={"comment": "Well designed", "recommendation": "approve"},
            headers=REVIEWER,
        )

        assert res.status_code == 201
        body = res.get_json()
        assert body["comment"]["recommendation"] == "approve"
        assert body["transition"]["new_status"] == "approved"
        assert client.get(f"{BASE}/{created['id']}").get_json()["status"] == "approved"

    def test_reviewer_feedback_revisions_keep_status(self, client, pi_scientist):
        created = _create(client, pi_scientist)
        _to_under_review(client, pi_scientist, created["id"])

        res = client.post(
            f"{BASE}/{created['id']}/reviewer-feedback",
            json={"comment": "Clarify sampling", "recommendation": "minor_revisions"},
            headers=REVIEWER,
        )

        assert res.status_code == 201
        assert res.get_json()["transition"] is None
        assert client.get(f"{BASE}/{created['id']}").get_json()["status"] == "under_review"

    def test_timeline_hides_status_changes(self, client, pi_scientist):
        created = _create(client, pi_scientist)
        _to_under_review(client, pi_scientist, created["id"])

        entries = client.get(f"{BASE}/{created['id']}/timeline").get_json()["entries"]

        assert [e["label"] for e in entries] == ["Draft Created", "Submitted", "Vetted", "Under Review"]
        assert all(e["kind"] == "status" for e in entries)


class TestResearchActivityLinks:

    @pytest.fixture()
    def activity(self):
        activity = ResearchActivity(sdr_number="SDR-042", title="Gene therapy")
        db.session.add(activity)
        db.session.commit()
        return activity

    def test_link_list_unlink(self, client, pi_scientist, activity):
        created = _create(client, pi_scientist, "ibc")
        url = f"{BASE}/{created['id']}/research-activities"

        res = client.post(url, json={"research_activity_id": activity.id}, headers=_pi_headers(pi_scientist))
        assert res.status_code == 201

        res = client.post(url, json={"research_activity_id": activity.id}, headers=_pi_headers(pi_scientist))
        assert res.status_code == 409

        assert client.get(url).get_json()["total"] == 1

        res = client.delete(f"{url}/{activity.id}", headers=_pi_headers(pi_scientist))
        assert res.status_code == 200
        assert client.get(url).get_json()["total"] == 0

    def test_irb_link_is_422(self, client, pi_scientist, activity):
        created = _create(client, pi_scientist, "irb")
        res = client.post(
            f"{BASE}/{created['id']}/research-activities",
            json={"research_activity_id": activity.id},
            headers=_pi_headers(pi_scientist),
        )
        assert res.status_code == 422


class TestHealth:

    def test_health_and_request_id(self, client):
        res = client.get("/api/v1/health", headers={"X-Request-ID": "abc123"})
        assert res.status_code == 200
        assert res.get_json()["checks"]["database"]["status"] == "ok"
        assert res.headers["X-Request-ID"] == "abc123"
