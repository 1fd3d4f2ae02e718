"""
Unit tests for role derivation.
"""

import pytest

from roles import Role, is_mentor, navigation_for, resolve_role, role_display
from schemas import User


class TestResolveRole:
    """Test cases for resolve_role."""

    def test_admin_override_wins_over_mentor_fields(self):
        assert resolve_role({"role": "admin"}) == Role.ADMIN
        assert resolve_role({"role": "admin", "year": "Alumni", "expertise_domains": ["ML"]}) == Role.ADMIN

    def test_alumni_is_mentor(self):
        assert resolve_role({"year": "Alumni"}) == Role.MENTOR

    def test_expertise_domains_make_a_mentor(self):
        assert resolve_role({"expertise_domains": ["X"]}) == Role.MENTOR

    def test_empty_record_is_user(self):
        assert resolve_role({}) == Role.USER

    def test_none_is_user(self):
        assert resolve_role(None) == Role.USER

    @pytest.mark.parametrize(
        "user",
        [
            {"year": "4th Year"},
            {"expertise_domains": []},
            {"expertise_domains": None, "year": None},
            {"role": "user"},
        ],
    )
    def test_falsy_fields_fall_through_to_user(self, user):
        assert resolve_role(user) == Role.USER

    def test_accepts_pydantic_models(self):
        user = User(email="a@b.c", full_name="A", year="Alumni")
        assert resolve_role(user) == Role.MENTOR


class TestMentorPredicate:
    """The listing predicate ignores the admin override."""

    def test_alumni_admin_appears_in_mentor_listings(self):
        admin = {"role": "admin", "year": "Alumni"}
        assert resolve_role(admin) == Role.ADMIN
        assert is_mentor(admin) is True

    def test_plain_admin_is_not_a_mentor(self):
        assert is_mentor({"role": "admin"}) is False


class TestRoleDisplay:
    def test_labels(self):
        assert role_display(Role.ADMIN) == "Administrator"
        assert role_display(Role.MENTOR) == "Mentor"
        assert role_display(Role.USER) == "Student"

    def test_navigation_is_role_specific(self):
        student_pages = [item["page"] for item in navigation_for(Role.USER)]
        admin_pages = [item["page"] for item in navigation_for(Role.ADMIN)]

        assert "AIChat" in student_pages
        assert "AdminOpportunities" not in student_pages
        assert "AdminOpportunities" in admin_pages
        assert navigation_for(Role.MENTOR)[1] == {"title": "My Mentees", "page": "MentorDashboard"}
