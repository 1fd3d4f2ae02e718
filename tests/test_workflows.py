"""
Unit tests for workflow operations.
"""

from datetime import date, timedelta
from unittest.mock import patch

import pytest

import workflows
from errors import (
    AuthorizationError,
    InvalidTransitionError,
    NotFoundError,
    TransientIOError,
    ValidationError,
)
from schemas import (
    ApplicationCreate,
    CareerResource,
    ChatMessage,
    CommunityCreate,
    CommunityMember,
    MentorshipRequest,
    MentorshipRequestCreate,
    MessageCreate,
    OpportunityCreate,
    OpportunityUpdate,
    PostCreate,
    ProfileUpdate,
    PromoteMentor,
    ReferralApplication,
    ResourceCreate,
    User,
)


def make_request(store, student, mentor, **overrides):
    payload = MentorshipRequestCreate(
        mentor_id=mentor["id"], domain="Career Guidance", message="Hi", **overrides
    )
    return workflows.request_mentorship(store, student, payload)


def make_opportunity(store, admin, **overrides):
    fields = {"company_name": "Acme", "position": "SWE Intern", "description": "Backend team"}
    fields.update(overrides)
    return workflows.create_opportunity(store, admin, OpportunityCreate(**fields))


def apply(store, student, opportunity, note="I'd love to join"):
    payload = ApplicationCreate(resume_url="https://files.test/r.pdf", cover_note=note)
    return workflows.apply_for_referral(store, student, opportunity["id"], payload)


class TestMentorshipRequests:
    """Test cases for the mentorship request lifecycle."""

    def test_create_starts_pending(self, store, student, mentor):
        # Act
        request = make_request(store, student, mentor, goals="Prepare for placements")

        # Assert
        assert request["status"] == "pending"
        assert request["student_id"] == student["id"]
        assert request["mentor_id"] == mentor["id"]
        assert request["goals"] == "Prepare for placements"

    @pytest.mark.parametrize("domain,message", [("", "Hi"), ("Backend", "   "), ("  ", "")])
    def test_blank_domain_or_message_fails_without_writing(self, store, student, mentor, domain, message):
        payload = MentorshipRequestCreate(mentor_id=mentor["id"], domain=domain, message=message)

        with pytest.raises(ValidationError):
            workflows.request_mentorship(store, student, payload)

        assert store.collection(MentorshipRequest).list() == []

    def test_target_must_be_a_mentor(self, store, student, outsider):
        with pytest.raises(ValidationError):
            make_request(store, student, outsider)

    def test_unknown_mentor_is_not_found(self, store, student):
        with pytest.raises(NotFoundError):
            make_request(store, student, {"id": "missing"})

    def test_cannot_request_yourself(self, store, student):
        with pytest.raises(ValidationError):
            make_request(store, student, student)

    @pytest.mark.parametrize("actor_name", ["mentor", "admin"])
    def test_only_students_request_mentorship(self, request, store, admin, mentor, actor_name):
        other_mentor = store.collection(User).create(
            User(email="dev@alumni.iiita.ac.in", full_name="Dev Rao", year="Alumni").model_dump()
        )

        with pytest.raises(AuthorizationError):
            make_request(store, request.getfixturevalue(actor_name), other_mentor)

        assert store.collection(MentorshipRequest).list() == []

    def test_duplicate_open_request_is_refused(self, store, student, mentor):
        make_request(store, student, mentor)

        with pytest.raises(ValidationError, match="already exists"):
            make_request(store, student, mentor)

    def test_rejected_pair_may_request_again(self, store, student, mentor):
        first = make_request(store, student, mentor)
        workflows.respond_to_request(store, mentor, first["id"], "rejected")

        second = make_request(store, student, mentor)

        assert second["status"] == "pending"

    def test_mentor_accepts(self, store, student, mentor):
        request = make_request(store, student, mentor)

        updated = workflows.respond_to_request(store, mentor, request["id"], "accepted")

        assert updated["status"] == "accepted"

    @pytest.mark.parametrize("actor_name", ["student", "outsider", "admin"])
    def test_only_named_mentor_can_respond(self, request, store, student, mentor, actor_name):
        mentorship = make_request(store, student, mentor)
        actor = request.getfixturevalue(actor_name)

        with pytest.raises(AuthorizationError):
            workflows.respond_to_request(store, actor, mentorship["id"], "accepted")

        assert store.collection(MentorshipRequest).get(mentorship["id"])["status"] == "pending"

    @pytest.mark.parametrize("terminal", ["accepted", "rejected"])
    @pytest.mark.parametrize("target", ["accepted", "rejected"])
    def test_terminal_states_never_move(self, store, student, mentor, terminal, target):
        request = make_request(store, student, mentor)
        workflows.respond_to_request(store, mentor, request["id"], terminal)

        with pytest.raises(InvalidTransitionError):
            workflows.respond_to_request(store, mentor, request["id"], target)

        assert store.collection(MentorshipRequest).get(request["id"])["status"] == terminal

    def test_pending_is_not_a_response(self, store, student, mentor):
        request = make_request(store, student, mentor)

        with pytest.raises(ValidationError):
            workflows.respond_to_request(store, mentor, request["id"], "pending")

    def test_list_by_side(self, store, student, mentor, outsider):
        mine = make_request(store, student, mentor)
        make_request(store, outsider, mentor)

        assert [r["id"] for r in workflows.list_requests(store, student_id=student["id"])] == [mine["id"]]
        assert len(workflows.list_requests(store, mentor_id=mentor["id"])) == 2


class TestOpportunities:
    def test_admin_posts_with_self_as_default_poster(self, store, admin):
        opportunity = make_opportunity(store, admin, required_skills=[" Python ", "", "SQL"])

        assert opportunity["posted_by"] == admin["id"]
        assert opportunity["is_active"] is True
        assert opportunity["required_skills"] == ["Python", "SQL"]

    def test_admin_posts_on_behalf_of_alumnus(self, store, admin, mentor):
        opportunity = make_opportunity(store, admin, posted_by=mentor["id"])
        assert opportunity["posted_by"] == mentor["id"]

    def test_non_admin_cannot_post(self, store, mentor):
        with pytest.raises(AuthorizationError):
            make_opportunity(store, mentor)

    def test_required_fields(self, store, admin):
        with pytest.raises(ValidationError):
            make_opportunity(store, admin, description=" ")

    def test_deadline_is_stored_as_iso_date(self, store, admin):
        opportunity = make_opportunity(store, admin, application_deadline=date(2030, 1, 31))
        assert opportunity["application_deadline"] == "2030-01-31"

    def test_toggle_does_not_touch_applications(self, store, admin, student):
        opportunity = make_opportunity(store, admin)
        application = apply(store, student, opportunity)

        toggled = workflows.toggle_opportunity(store, admin, opportunity["id"])

        assert toggled["is_active"] is False
        assert store.collection(ReferralApplication).get(application["id"])["status"] == "pending"
        assert workflows.toggle_opportunity(store, admin, opportunity["id"])["is_active"] is True

    def test_update_changes_only_given_fields(self, store, admin):
        opportunity = make_opportunity(store, admin, location="Bengaluru")

        updated = workflows.update_opportunity(
            store, admin, opportunity["id"], OpportunityUpdate(position="SDE 1")
        )

        assert updated["position"] == "SDE 1"
        assert updated["location"] == "Bengaluru"

    def test_deadline_passed(self):
        today = date(2026, 10, 19)
        assert workflows.deadline_passed({"application_deadline": "2026-10-18"}, today) is True
        assert workflows.deadline_passed({"application_deadline": "2026-10-19"}, today) is False
        assert workflows.deadline_passed({}, today) is False


class TestReferralApplications:
    """Test cases for the referral application lifecycle."""

    def test_apply_starts_pending(self, store, admin, student):
        opportunity = make_opportunity(store, admin)

        application = apply(store, student, opportunity)

        assert application["status"] == "pending"
        assert application["applicant_id"] == student["id"]
        assert application["reviewer_notes"] is None

    def test_empty_cover_note_fails_and_writes_nothing(self, store, admin, student):
        opportunity = make_opportunity(store, admin)

        with pytest.raises(ValidationError):
            apply(store, student, opportunity, note="   ")

        assert store.collection(ReferralApplication).list() == []

    def test_resume_is_required(self, store, admin, student):
        opportunity = make_opportunity(store, admin)
        payload = ApplicationCreate(resume_url="", cover_note="Hello")

        with pytest.raises(ValidationError):
            workflows.apply_for_referral(store, student, opportunity["id"], payload)

    def test_inactive_opportunity_refuses_applications(self, store, admin, student):
        opportunity = make_opportunity(store, admin, is_active=False)

        with pytest.raises(ValidationError, match="no longer accepting"):
            apply(store, student, opportunity)

    def test_expired_opportunity_refuses_applications(self, store, admin, student):
        opportunity = make_opportunity(store, admin, application_deadline=date.today() - timedelta(days=1))

        with pytest.raises(ValidationError, match="deadline"):
            apply(store, student, opportunity)

    def test_duplicate_application_refused(self, store, admin, student):
        opportunity = make_opportunity(store, admin)
        apply(store, student, opportunity)

        with pytest.raises(ValidationError, match="already exists"):
            apply(store, student, opportunity)

    def test_unknown_opportunity(self, store, student):
        with pytest.raises(NotFoundError):
            apply(store, student, {"id": "missing"})

    def test_poster_reviews_with_default_notes(self, store, admin, mentor, student):
        opportunity = make_opportunity(store, admin, posted_by=mentor["id"])
        application = apply(store, student, opportunity)

        reviewed = workflows.review_application(store, mentor, application["id"], "rejected")

        assert reviewed["status"] == "rejected"
        assert reviewed["reviewer_notes"] == "Application rejected by alumni"

    def test_admin_reviews_on_behalf_of_poster(self, store, admin, mentor, student):
        opportunity = make_opportunity(store, admin, posted_by=mentor["id"])
        application = apply(store, student, opportunity)

        reviewed = workflows.review_application(store, admin, application["id"], "approved", "Great fit")

        assert reviewed["status"] == "approved"
        assert reviewed["reviewer_notes"] == "Great fit"

    @pytest.mark.parametrize("actor_name", ["student", "outsider"])
    def test_others_cannot_review(self, request, store, admin, mentor, student, actor_name):
        opportunity = make_opportunity(store, admin, posted_by=mentor["id"])
        application = apply(store, student, opportunity)

        with pytest.raises(AuthorizationError):
            workflows.review_application(store, request.getfixturevalue(actor_name), application["id"], "approved")

        assert store.collection(ReferralApplication).get(application["id"])["status"] == "pending"

    @pytest.mark.parametrize("actor_name", ["mentor", "admin"])
    def test_only_students_apply(self, request, store, admin, mentor, actor_name):
        opportunity = make_opportunity(store, admin)

        with pytest.raises(AuthorizationError):
            apply(store, request.getfixturevalue(actor_name), opportunity)

        assert store.collection(ReferralApplication).list() == []

    def test_poster_cannot_apply_to_own_opportunity(self, store, admin, outsider):
        # Arrange
        opportunity = make_opportunity(store, admin, posted_by=outsider["id"])

        # Act & Assert
        with pytest.raises(ValidationError, match="you posted"):
            apply(store, outsider, opportunity)

        assert store.collection(ReferralApplication).list() == []

    def test_applicant_cannot_review_own_application(self, store, admin, student):
        opportunity = make_opportunity(store, admin)
        application = apply(store, student, opportunity)
        # Applicant later gains admin rights
        promoted = store.collection(User).update(student["id"], {"role": "admin"})

        with pytest.raises(AuthorizationError, match="your own application"):
            workflows.review_application(store, promoted, application["id"], "approved")

        assert store.collection(ReferralApplication).get(application["id"])["status"] == "pending"

    def test_reviewed_application_cannot_be_reviewed_again(self, store, admin, student):
        opportunity = make_opportunity(store, admin)
        application = apply(store, student, opportunity)
        workflows.review_application(store, admin, application["id"], "approved")

        with pytest.raises(InvalidTransitionError):
            workflows.review_application(store, admin, application["id"], "rejected")


class TestChat:
    """Test cases for the chat thread of an accepted mentorship."""

    @pytest.fixture
    def accepted(self, store, student, mentor):
        request = make_request(store, student, mentor)
        return workflows.respond_to_request(store, mentor, request["id"], "accepted")

    def test_parties_exchange_messages_in_order(self, store, student, mentor, accepted):
        workflows.send_message(store, student, accepted["id"], MessageCreate(content="Thanks!"))
        workflows.send_message(store, mentor, accepted["id"], MessageCreate(content="Happy to help"))

        messages = workflows.list_messages(store, student, accepted["id"])

        assert [m["content"] for m in messages] == ["Thanks!", "Happy to help"]
        assert messages[0]["sender_id"] == student["id"]
        assert messages[0]["receiver_id"] == mentor["id"]
        assert messages[1]["receiver_id"] == student["id"]

    def test_outsider_cannot_send_or_read(self, store, outsider, accepted):
        with pytest.raises(AuthorizationError):
            workflows.send_message(store, outsider, accepted["id"], MessageCreate(content="Hi"))
        with pytest.raises(AuthorizationError):
            workflows.list_messages(store, outsider, accepted["id"])

        assert store.collection(ChatMessage).list() == []

    def test_admin_can_read(self, store, admin, accepted):
        assert workflows.list_messages(store, admin, accepted["id"]) == []

    def test_pending_request_has_no_chat(self, store, student, mentor):
        request = make_request(store, student, mentor)

        with pytest.raises(ValidationError):
            workflows.send_message(store, student, request["id"], MessageCreate(content="Hello?"))

    def test_message_needs_content_or_file(self, store, student, accepted):
        with pytest.raises(ValidationError):
            workflows.send_message(store, student, accepted["id"], MessageCreate(content="  "))

        message = workflows.send_message(
            store,
            student,
            accepted["id"],
            MessageCreate(file_url="https://files.test/cv.pdf", file_name="cv.pdf"),
        )
        assert message["content"] == ""
        assert message["file_name"] == "cv.pdf"


class TestCommunities:
    def test_admin_creates_community_and_post(self, store, admin):
        community = workflows.create_community(
            store, admin, CommunityCreate(name="Placements", description="Prep together")
        )
        post = workflows.create_post(
            store,
            admin,
            community["id"],
            PostCreate(title="Welcome", content="Say hi", tags=["intro", " ", "prep "]),
        )

        assert post["author_id"] == admin["id"]
        assert post["tags"] == ["intro", "prep"]
        assert post["opportunity_id"] is None
        assert post["likes_count"] == 0

    def test_students_cannot_create(self, store, student):
        with pytest.raises(AuthorizationError):
            workflows.create_community(store, student, CommunityCreate(name="X", description="Y"))

    def test_community_requires_name_and_description(self, store, admin):
        with pytest.raises(ValidationError):
            workflows.create_community(store, admin, CommunityCreate(name="X", description=""))

    def test_join_is_idempotent(self, store, admin, student):
        community = workflows.create_community(store, admin, CommunityCreate(name="X", description="Y"))

        first = workflows.join_community(store, student, community["id"])
        second = workflows.join_community(store, student, community["id"])

        assert first["id"] == second["id"]
        assert len(store.collection(CommunityMember).list()) == 1

    def test_join_unknown_community(self, store, student):
        with pytest.raises(NotFoundError):
            workflows.join_community(store, student, "missing")


class TestResourceBoard:
    """Test cases for the optimistic like counter."""

    @pytest.fixture
    def resource(self, store, student):
        return workflows.create_resource(
            store,
            student,
            ResourceCreate(title="Resume guide", content_url="https://example.com/guide", category="Resume Templates"),
        )

    def test_resources_are_auto_approved(self, resource, student):
        assert resource["is_approved"] is True
        assert resource["uploaded_by"] == student["id"]

    def test_title_and_url_required(self, store, student):
        with pytest.raises(ValidationError):
            workflows.create_resource(store, student, ResourceCreate(title="X", content_url=""))

    def test_unapproved_resources_are_hidden(self, store, student, resource):
        store.collection(CareerResource).create(
            {"title": "Hidden", "content_url": "u", "uploaded_by": student["id"], "is_approved": False}
        )

        titles = [r["title"] for r in workflows.list_resources(store)]

        assert titles == ["Resume guide"]

    def test_filters_by_category_and_search(self, store, student, resource):
        workflows.create_resource(
            store, student, ResourceCreate(title="Graphs", description="BFS and DFS", content_url="u", category="DSA Practice")
        )

        assert [r["title"] for r in workflows.list_resources(store, category="DSA Practice")] == ["Graphs"]
        assert [r["title"] for r in workflows.list_resources(store, search="bfs")] == ["Graphs"]
        assert len(workflows.list_resources(store, category="all")) == 2

    def test_like_twice_increments_once(self, store, resource):
        board = workflows.ResourceBoard(store)
        board.load()

        first = board.like(resource["id"])
        second = board.like(resource["id"])

        assert first["likes_count"] == 1
        assert second["likes_count"] == 1
        assert second["liked"] is True
        assert store.collection(CareerResource).get(resource["id"])["likes_count"] == 1

    def test_separate_boards_each_count(self, store, resource):
        workflows.ResourceBoard(store).like(resource["id"])
        workflows.ResourceBoard(store).like(resource["id"])

        assert store.collection(CareerResource).get(resource["id"])["likes_count"] == 2

    def test_failed_write_rolls_back(self, store, resource):
        board = workflows.ResourceBoard(store)
        board.load()
        collection = store.collection(CareerResource)

        with patch.object(collection, "update", side_effect=TransientIOError("Could not update")):
            with pytest.raises(TransientIOError):
                board.like(resource["id"])

        assert board.resources[resource["id"]]["likes_count"] == 0
        assert resource["id"] not in board.liked
        # A later like still goes through
        assert board.like(resource["id"])["likes_count"] == 1


class TestProfiles:
    def test_user_edits_own_profile(self, store, student):
        updated = workflows.update_profile(
            store, student, student["id"], ProfileUpdate(bio="Learning Go", skills=["Go", " "])
        )
        assert updated["bio"] == "Learning Go"
        assert updated["skills"] == ["Go"]

    def test_user_cannot_edit_others(self, store, student, outsider):
        with pytest.raises(AuthorizationError):
            workflows.update_profile(store, student, outsider["id"], ProfileUpdate(bio="x"))

    def test_only_admin_changes_role(self, store, admin, student):
        with pytest.raises(AuthorizationError):
            workflows.update_profile(store, student, student["id"], ProfileUpdate(role="admin"))

        updated = workflows.update_profile(store, admin, student["id"], ProfileUpdate(role="admin"))
        assert updated["role"] == "admin"

    def test_promote_to_mentor(self, store, admin, outsider):
        updated = workflows.promote_to_mentor(
            store,
            admin,
            outsider["id"],
            PromoteMentor(expertise_domains=["ML", " ", "Data Science"], current_company="Globex"),
        )

        assert updated["expertise_domains"] == ["ML", "Data Science"]
        assert updated["year"] == "2nd Year"

    def test_promote_requires_admin(self, store, mentor, outsider):
        with pytest.raises(AuthorizationError):
            workflows.promote_to_mentor(store, mentor, outsider["id"], PromoteMentor(expertise_domains=["ML"]))

    def test_promote_needs_mentor_qualification(self, store, admin, outsider):
        with pytest.raises(ValidationError):
            workflows.promote_to_mentor(store, admin, outsider["id"], PromoteMentor())


class TestRegistration:
    def test_register_normalizes_and_defaults_role(self, store):
        user = workflows.register_user(
            store, User(email=" New@IIITA.ac.in ", full_name=" New Student ", role="admin")
        )

        assert user["email"] == "new@iiita.ac.in"
        assert user["full_name"] == "New Student"
        assert user["role"] == "user"

    def test_configured_admin_email(self, store, monkeypatch):
        monkeypatch.setattr(workflows.Config, "ADMIN_EMAILS", ["boss@iiita.ac.in"])

        user = workflows.register_user(store, User(email="boss@iiita.ac.in", full_name="Boss"))

        assert user["role"] == "admin"

    def test_duplicate_email(self, store, student):
        with pytest.raises(ValidationError, match="already registered"):
            workflows.register_user(store, User(email=student["email"], full_name="Dup"))
