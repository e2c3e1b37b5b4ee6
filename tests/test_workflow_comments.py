"""Role-gated comment operations: office notes, board feedback, PI responses."""

from datetime import datetime, timedelta, timezone

import pytest

from research_portal.auth import Actor
from research_portal.core.exceptions import Forbidden, InvalidTransition, ValidationError
from research_portal.models.application import ApplicationStatus, CommentType
from research_portal.services import application_store as store
from research_portal.services import permission_service
from research_portal.services.workflow_engine import (
    add_office_comment,
    add_pi_response,
    submit_reviewer_feedback,
    transition_application,
)

T0 = datetime(2026, 2, 1, 9, 0, tzinfo=timezone.utc)


def _under_review(pi_scientist, pi, office):
    application = store.create_application("irb", "Sleep and memory", pi_scientist.id, now=T0)
    for hour, (status, actor) in enumerate(
        (("submitted", pi), ("vetted", office), ("under_review", office)), start=1,
    ):
        transition_application(application.id, status, actor, now=T0 + timedelta(hours=hour))
    return store.get_application(application.id)


class TestOfficeComments:

    def test_office_staff_can_comment(self, pi_scientist, office):
        application = store.create_application("irb", "Survey", pi_scientist.id)
        comment = add_office_comment(application.id, "Add data retention plan", office)

        assert comment.comment_type is CommentType.OFFICE_COMMENT
        assert comment.author_name == "Dana Office"
        assert store.list_comments(application.id) == [comment]

    def test_investigators_cannot_comment_as_office(self, pi_scientist, pi):
        permission_service.seed_default_permissions()
        application = store.create_application("irb", "Survey", pi_scientist.id)

        with pytest.raises(Forbidden):
            add_office_comment(application.id, "Looks fine to me", pi)
        assert store.list_comments(application.id) == []

    def test_transition_note_from_office(self, pi_scientist, pi, office):
        application = store.create_application("irb", "Survey", pi_scientist.id, now=T0)
        transition_application(application.id, "submitted", pi, now=T0 + timedelta(hours=1))
        transition_application(
            application.id, "vetted", office, comment="Complete", now=T0 + timedelta(hours=2),
        )

        last = store.list_comments(application.id)[-1]
        assert last.comment_type is CommentType.OFFICE_COMMENT
        assert last.comment == "Complete"


class TestReviewerFeedback:

    def test_approve_recommendation_applies_transition(self, pi_scientist, pi, office, reviewer):
        application = _under_review(pi_scientist, pi, office)

        result = submit_reviewer_feedback(
            application.id, "Well designed", "approve", reviewer, now=T0 + timedelta(days=1),
        )

        assert result["transition"]["new_status"] == "approved"
        application = store.get_application(application.id)
        assert application.status is ApplicationStatus.APPROVED
        kinds = [c.comment_type for c in store.list_comments(application.id)][-2:]
        assert kinds == [CommentType.REVIEWER_FEEDBACK, CommentType.STATUS_CHANGE]

    def test_reject_recommendation(self, pi_scientist, pi, office, reviewer):
        application = _under_review(pi_scientist, pi, office)
        submit_reviewer_feedback(application.id, "Risk too high", "reject", reviewer)
        assert store.get_application(application.id).status is ApplicationStatus.REJECTED

    @pytest.mark.parametrize("recommendation", ["minor_revisions", "major_revisions"])
    def test_revision_requests_keep_status(self, pi_scientist, pi, office, reviewer, recommendation):
        application = _under_review(pi_scientist, pi, office)

        result = submit_reviewer_feedback(application.id, "Clarify consent", recommendation, reviewer)

        assert result["transition"] is None
        assert result["comment"]["recommendation"] == recommendation
        application = store.get_application(application.id)
        assert application.status is ApplicationStatus.UNDER_REVIEW
        assert application.approval_date is None

    def test_unknown_recommendation(self, pi_scientist, pi, office, reviewer):
        application = _under_review(pi_scientist, pi, office)
        with pytest.raises(ValidationError):
            submit_reviewer_feedback(application.id, "Hmm", "defer", reviewer)

    def test_feedback_requires_under_review(self, pi_scientist, reviewer):
        application = store.create_application("irb", "Survey", pi_scientist.id)
        with pytest.raises(InvalidTransition):
            submit_reviewer_feedback(application.id, "Early look", "approve", reviewer)
        assert store.list_comments(application.id) == []

    def test_feedback_requires_reviewer_access(self, pi_scientist, pi, office):
        permission_service.seed_default_permissions()
        application = _under_review(pi_scientist, pi, office)
        with pytest.raises(Forbidden):
            submit_reviewer_feedback(application.id, "Approve it", "approve", office)
        assert store.get_application(application.id).status is ApplicationStatus.UNDER_REVIEW


class TestPiResponse:

    def test_pi_can_respond(self, pi_scientist, pi):
        application = store.create_application("irb", "Survey", pi_scientist.id)
        comment = add_pi_response(application.id, "Updated protocol attached", pi)
        assert comment.author_type == "pi"
        assert comment.author_id == pi_scientist.id

    def test_other_scientists_cannot_respond(self, pi_scientist):
        application = store.create_application("irb", "Survey", pi_scientist.id)
        other = Actor(role="Investigator", id=pi_scientist.id + 1, name="Grace")
        with pytest.raises(Forbidden):
            add_pi_response(application.id, "I agree", other)


class TestGatewayActorIds:

    def test_board_staff_ids_are_stored_as_given(self, pi_scientist, pi):
        office = Actor(role="IRB Office", id=4242, name="Dana Office")
        reviewer = Actor(role="IRB Reviewer", id=5150, name="Rex Reviewer")
        application = _under_review(pi_scientist, pi, office)

        add_office_comment(application.id, "Board assigned", office)
        submit_reviewer_feedback(application.id, "Sound design", "approve", reviewer)

        comments = store.list_comments(application.id)
        assert store.get_application(application.id).status is ApplicationStatus.APPROVED
        assert {c.author_id for c in comments if c.author_type == "office"} == {4242}
        assert {c.author_id for c in comments if c.author_type == "reviewer"} == {5150}
