"""
View composition.

Each function here backs one page of the portal: it loads the entity
slices the page needs, joins them in memory and returns a JSON-ready dict.
A reference to a record that no longer exists is rendered as a placeholder
instead of failing the whole view.
"""

from typing import Any, Dict, Iterable, List, Optional

from database import EntityStore
from errors import NotFoundError
from logger import get_logger
from roles import Role, is_mentor, navigation_for, resolve_role, role_display
from schemas import (
    Community,
    CommunityMember,
    CommunityPost,
    MentorshipRequest,
    ReferralApplication,
    ReferralOpportunity,
    User,
)
from workflows import ensure_role, list_messages

logger = get_logger(component="views")

RECENT_APPLICATIONS = 3
RECENT_MENTORSHIPS = 2
LATEST_OPPORTUNITIES = 5
MAX_SUGGESTED_MENTORS = 5


def placeholder_user(user_id: Optional[str]) -> Dict[str, Any]:
    return {"id": user_id, "full_name": "Unknown user", "missing": True}


def placeholder_opportunity(opportunity_id: Optional[str]) -> Dict[str, Any]:
    return {
        "id": opportunity_id,
        "company_name": "Unknown company",
        "position": "Opportunity unavailable",
        "missing": True,
    }


def index_by_id(records: Iterable[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    return {r["id"]: r for r in records}


def lookup(index: Dict[str, Dict[str, Any]], key: Optional[str], placeholder) -> Dict[str, Any]:
    found = index.get(key) if key else None
    if found is None:
        logger.debug("Join target missing", target_id=key)
        return placeholder(key)
    return found


def count_by_status(records: Iterable[Dict[str, Any]], *statuses: str) -> Dict[str, int]:
    records = list(records)
    counts = {s: sum(1 for r in records if r.get("status") == s) for s in statuses}
    counts["total"] = len(records)
    return counts


def session_summary(user: Dict[str, Any]) -> Dict[str, Any]:
    role = resolve_role(user)
    return {
        "user": user,
        "role": role.value,
        "role_display": role_display(role),
        "navigation": navigation_for(role),
    }


# ---------- Dashboard ----------

def dashboard(store: EntityStore, user: Dict[str, Any]) -> Dict[str, Any]:
    role = resolve_role(user)
    out: Dict[str, Any] = {"role": role.value}

    if role == Role.USER:
        requests = store.collection(MentorshipRequest).filter(
            {"student_id": user["id"]}, order_by="-created_date"
        )
        applications = store.collection(ReferralApplication).filter(
            {"applicant_id": user["id"]}, order_by="-created_date"
        )
        opportunities = store.collection(ReferralOpportunity).filter(
            {"is_active": True}, order_by="-created_date", limit=LATEST_OPPORTUNITIES
        )
        activities = [
            {
                "type": "application",
                "status": a["status"],
                "created_date": a["created_date"],
                "description": "Applied for referral opportunity",
            }
            for a in applications[:RECENT_APPLICATIONS]
        ] + [
            {
                "type": "mentorship",
                "status": r["status"],
                "created_date": r["created_date"],
                "description": f"Requested mentorship in {r['domain']}",
            }
            for r in requests[:RECENT_MENTORSHIPS]
        ]
        activities.sort(key=lambda a: a["created_date"], reverse=True)
        out["stats"] = {
            "mentorship_requests": len(requests),
            "applications": len(applications),
            "opportunities": len(opportunities),
        }
        out["recent_activities"] = activities
        out["latest_opportunities"] = opportunities

    elif role == Role.MENTOR:
        incoming = store.collection(MentorshipRequest).filter({"mentor_id": user["id"]})
        posted_ids = [o["id"] for o in store.collection(ReferralOpportunity).filter({"posted_by": user["id"]})]
        referrals = (
            store.collection(ReferralApplication).filter({"opportunity_id": {"$in": posted_ids}})
            if posted_ids
            else []
        )
        out["stats"] = {
            "mentorship_requests": sum(1 for r in incoming if r["status"] == "pending"),
            "active_mentees": sum(1 for r in incoming if r["status"] == "accepted"),
            "referral_requests": len(referrals),
            "total_connections": len(incoming),
        }

    else:
        users = store.collection(User).list()
        opportunities = store.collection(ReferralOpportunity).list()
        communities = store.collection(Community).list()
        accepted = store.collection(MentorshipRequest).filter({"status": "accepted"})
        out["stats"] = {
            "total_users": len(users),
            "communities": len(communities),
            "opportunities": len(opportunities),
            "active_connections": len(accepted),
        }

    return out


# ---------- Mentors ----------

def _matches_search(user: Dict[str, Any], term: str) -> bool:
    if not term:
        return True
    term = term.lower()
    return (
        term in (user.get("full_name") or "").lower()
        or term in (user.get("current_company") or "").lower()
        or any(term in d.lower() for d in user.get("expertise_domains") or [])
    )


def mentor_directory(
    store: EntityStore,
    user: Dict[str, Any],
    search: Optional[str] = None,
    branch: Optional[str] = None,
    year: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Mentors other than ``user``, each with ``user``'s latest request to them."""
    mentors = [
        u for u in store.collection(User).list(order_by="-created_date")
        if u["id"] != user["id"] and is_mentor(u)
    ]
    mine = store.collection(MentorshipRequest).filter(
        {"student_id": user["id"]}, order_by="-created_date"
    )
    latest: Dict[str, Dict[str, Any]] = {}
    for r in mine:
        latest.setdefault(r["mentor_id"], r)

    out = []
    for m in mentors:
        if not _matches_search(m, (search or "").strip()):
            continue
        if branch and branch != "all" and m.get("branch") != branch:
            continue
        if year and year != "all" and m.get("year") != year:
            continue
        out.append({**m, "request": latest.get(m["id"])})
    return out


def mentor_dashboard(store: EntityStore, mentor: Dict[str, Any]) -> Dict[str, Any]:
    requests = store.collection(MentorshipRequest).filter(
        {"mentor_id": mentor["id"]}, order_by="-created_date"
    )
    users = index_by_id(store.collection(User).list())

    def enrich(r):
        return {**r, "student": lookup(users, r["student_id"], placeholder_user)}

    return {
        "incoming_requests": [enrich(r) for r in requests if r["status"] == "pending"],
        "active_mentorships": [enrich(r) for r in requests if r["status"] == "accepted"],
    }


def mentor_stats(requests: List[Dict[str, Any]], mentor_id: str) -> Dict[str, int]:
    mine = [r for r in requests if r["mentor_id"] == mentor_id]
    counts = count_by_status(mine, "pending", "accepted", "rejected")
    return {
        "total_requests": counts["total"],
        "pending_requests": counts["pending"],
        "active_mentees": counts["accepted"],
        "rejected_requests": counts["rejected"],
    }


def admin_mentors(
    store: EntityStore,
    actor: Dict[str, Any],
    search: Optional[str] = None,
    status: Optional[str] = None,
) -> Dict[str, Any]:
    ensure_role(actor, Role.ADMIN)
    users = store.collection(User).list(order_by="-created_date")
    requests = store.collection(MentorshipRequest).list(order_by="-created_date")
    mentors = [u for u in users if is_mentor(u)]

    rows = []
    for m in mentors:
        stats = mentor_stats(requests, m["id"])
        if not _matches_search(m, (search or "").strip()):
            continue
        if status == "active" and stats["active_mentees"] == 0:
            continue
        if status == "pending" and stats["pending_requests"] == 0:
            continue
        if status == "inactive" and stats["total_requests"] > 0:
            continue
        rows.append({**m, "stats": stats})

    return {
        "mentors": rows,
        "candidates": [u for u in users if not is_mentor(u)],
        "summary": {
            "total_mentors": len(mentors),
            "active_mentors": sum(1 for m in mentors if mentor_stats(requests, m["id"])["active_mentees"] > 0),
            "pending_requests": sum(1 for r in requests if r["status"] == "pending"),
        },
    }


# ---------- Referrals ----------

def opportunity_board(store: EntityStore, user: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Opportunities with poster details. Students only see active postings."""
    predicate = {} if resolve_role(user) == Role.ADMIN else {"is_active": True}
    opportunities = store.collection(ReferralOpportunity).filter(predicate, order_by="-created_date")
    users = index_by_id(store.collection(User).list())
    return [{**o, "poster": lookup(users, o.get("posted_by"), placeholder_user)} for o in opportunities]


def admin_opportunities(store: EntityStore, actor: Dict[str, Any]) -> Dict[str, Any]:
    ensure_role(actor, Role.ADMIN)
    opportunities = store.collection(ReferralOpportunity).list(order_by="-created_date")
    applications = store.collection(ReferralApplication).list()
    users = store.collection(User).list()

    rows = []
    for o in opportunities:
        counts = count_by_status(
            [a for a in applications if a["opportunity_id"] == o["id"]], "pending", "approved", "rejected"
        )
        rows.append({**o, "stats": {
            "total_applications": counts["total"],
            "pending_applications": counts["pending"],
            "approved_applications": counts["approved"],
            "rejected_applications": counts["rejected"],
        }})

    return {
        "opportunities": rows,
        # Posting on behalf of an alumnus
        "alumni": [u for u in users if u.get("year") == "Alumni"],
        "summary": {
            "total_opportunities": len(opportunities),
            "active_opportunities": sum(1 for o in opportunities if o.get("is_active")),
            "total_applications": len(applications),
            "pending_applications": sum(1 for a in applications if a["status"] == "pending"),
        },
    }


def student_referrals(store: EntityStore, student: Dict[str, Any]) -> Dict[str, Any]:
    applications = store.collection(ReferralApplication).filter(
        {"applicant_id": student["id"]}, order_by="-created_date"
    )
    opportunity_ids = list({a["opportunity_id"] for a in applications})
    opportunities = index_by_id(
        store.collection(ReferralOpportunity).filter({"id": {"$in": opportunity_ids}})
        if opportunity_ids
        else []
    )
    users = index_by_id(store.collection(User).list())

    rows = []
    for a in applications:
        opportunity = lookup(opportunities, a["opportunity_id"], placeholder_opportunity)
        rows.append({
            **a,
            "opportunity": opportunity,
            "alumni_poster": lookup(users, opportunity.get("posted_by"), placeholder_user),
        })
    return {"applications": rows, "counts": count_by_status(applications, "pending", "approved", "rejected")}


def alumni_referrals(store: EntityStore, reviewer: Dict[str, Any]) -> Dict[str, Any]:
    """Applications the reviewer may act on: to their postings, or all for admins."""
    opp_filter = {} if resolve_role(reviewer) == Role.ADMIN else {"posted_by": reviewer["id"]}
    opportunities = index_by_id(store.collection(ReferralOpportunity).filter(opp_filter))
    applications = (
        store.collection(ReferralApplication).filter(
            {"opportunity_id": {"$in": list(opportunities)}}, order_by="-created_date"
        )
        if opportunities
        else []
    )
    users = index_by_id(store.collection(User).list())

    rows = [
        {
            **a,
            "opportunity": lookup(opportunities, a["opportunity_id"], placeholder_opportunity),
            "applicant": lookup(users, a["applicant_id"], placeholder_user),
        }
        for a in applications
    ]
    reviewed = [r for r in rows if r["status"] != "pending"]
    return {
        "pending": [r for r in rows if r["status"] == "pending"],
        "reviewed": reviewed,
        "counts": count_by_status(rows, "pending", "approved", "rejected"),
    }


# ---------- Connections ----------

def my_connections(store: EntityStore, user: Dict[str, Any]) -> Dict[str, Any]:
    users = index_by_id(store.collection(User).list())
    accepted = store.collection(MentorshipRequest).filter({"status": "accepted"}, order_by="-created_date")
    mentorships = []
    for r in accepted:
        if user["id"] not in (r["student_id"], r["mentor_id"]):
            continue
        other_id = r["mentor_id"] if r["student_id"] == user["id"] else r["student_id"]
        mentorships.append({**r, "other_person": lookup(users, other_id, placeholder_user)})

    referrals = student_referrals(store, user)["applications"]
    return {"mentorships": mentorships, "referrals": referrals}


def chat_thread(store: EntityStore, user: Dict[str, Any], request_id: str) -> Dict[str, Any]:
    messages = list_messages(store, user, request_id)
    request = store.collection(MentorshipRequest).get(request_id)
    other_id = request["mentor_id"] if user["id"] == request["student_id"] else request["student_id"]
    try:
        other = store.collection(User).get(other_id)
    except NotFoundError:
        other = placeholder_user(other_id)
    return {
        "request": request,
        "other_user": other,
        "messages": messages,
        "can_send": request["status"] == "accepted" and user["id"] in (request["student_id"], request["mentor_id"]),
    }


# ---------- Communities ----------

def community_overview(store: EntityStore, user: Dict[str, Any]) -> List[Dict[str, Any]]:
    communities = store.collection(Community).list(order_by="-created_date")
    members = store.collection(CommunityMember).list()
    joined = {m["community_id"] for m in members if m["user_id"] == user["id"]}
    out = []
    for c in communities:
        out.append({
            **c,
            "member_count": sum(1 for m in members if m["community_id"] == c["id"]),
            "is_member": c["id"] in joined,
        })
    return out


def suggest_mentors_for_opportunity(
    mentors: List[Dict[str, Any]], opportunity: Optional[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """Mentors at the same company, or whose expertise appears in a required skill."""
    if not opportunity or opportunity.get("missing"):
        return []
    skills = [s.lower() for s in opportunity.get("required_skills") or []]
    out = []
    for m in mentors:
        if m.get("current_company") and m.get("current_company") == opportunity.get("company_name"):
            out.append(m)
        elif any(d.lower() in s for d in m.get("expertise_domains") or [] for s in skills):
            out.append(m)
    return out[:MAX_SUGGESTED_MENTORS]


def community_feed(store: EntityStore, user: Dict[str, Any], community_id: str) -> Dict[str, Any]:
    community = store.collection(Community).get(community_id)
    posts = store.collection(CommunityPost).filter({"community_id": community_id}, order_by="-created_date")

    opportunity_ids = list({p["opportunity_id"] for p in posts if p.get("opportunity_id")})
    opportunities = index_by_id(
        store.collection(ReferralOpportunity).filter({"id": {"$in": opportunity_ids}})
        if opportunity_ids
        else []
    )
    users = store.collection(User).list()
    authors = index_by_id(users)
    mentors = [u for u in users if u["id"] != user["id"] and is_mentor(u)]

    rows = []
    for p in posts:
        row = {**p, "author": lookup(authors, p["author_id"], placeholder_user)}
        if p.get("opportunity_id"):
            opportunity = lookup(opportunities, p["opportunity_id"], placeholder_opportunity)
            row["opportunity"] = opportunity
            row["suggested_mentors"] = suggest_mentors_for_opportunity(mentors, opportunity)
        rows.append(row)

    is_member = bool(
        store.collection(CommunityMember).filter({"community_id": community_id, "user_id": user["id"]}, limit=1)
    )
    return {"community": community, "is_member": is_member, "posts": rows}
