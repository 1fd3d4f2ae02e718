"""
Role derivation.

A user's role is never stored as-is: ``role == "admin"`` is an explicit
override, everyone else is classified from profile fields. ``resolve_role``
is the single place this happens.
"""

from enum import Enum
from typing import Any, Dict, List


class Role(str, Enum):
    ADMIN = "admin"
    MENTOR = "mentor"
    USER = "user"


ROLE_DISPLAY = {
    Role.ADMIN: "Administrator",
    Role.MENTOR: "Mentor",
    Role.USER: "Student",
}

NAVIGATION = {
    Role.USER: [
        ("Dashboard", "Dashboard"),
        ("Find Mentors", "Mentors"),
        ("Job Referrals", "Referrals"),
        ("Career Resources", "Resources"),
        ("Community", "Community"),
        ("My Connections", "MyConnections"),
        ("AI Assistant", "AIChat"),
    ],
    Role.MENTOR: [
        ("Dashboard", "Dashboard"),
        ("My Mentees", "MentorDashboard"),
        ("Referral Requests", "MentorReferrals"),
        ("My Connections", "MyConnections"),
    ],
    Role.ADMIN: [
        ("Dashboard", "Dashboard"),
        ("Manage Communities", "AdminCommunities"),
        ("Manage Mentors", "AdminMentors"),
        ("Post Opportunities", "AdminOpportunities"),
    ],
}


def _field(user: Any, name: str) -> Any:
    if user is None:
        return None
    if isinstance(user, dict):
        return user.get(name)
    return getattr(user, name, None)


def is_mentor(user: Any) -> bool:
    """Mentor predicate used for listings: Alumni, or any expertise domain."""
    return _field(user, "year") == "Alumni" or bool(_field(user, "expertise_domains"))


def is_admin(user: Any) -> bool:
    return _field(user, "role") == "admin"


def resolve_role(user: Any) -> Role:
    if is_admin(user):
        return Role.ADMIN
    if is_mentor(user):
        return Role.MENTOR
    return Role.USER


def role_display(role: Role) -> str:
    return ROLE_DISPLAY[role]


def navigation_for(role: Role) -> List[Dict[str, str]]:
    return [{"title": title, "page": page} for title, page in NAVIGATION[role]]
