"""
Workflow operations.

Mentorship requests and referral applications are small state machines:
both start at "pending" and move once to a terminal state, and only the
designated counterparty may move them. The remaining operations here
(chat, communities, resources, profiles) are single-record writes with
their own authorization rules.

Every function takes the entity store and the acting user explicitly.
"""

from datetime import date
from typing import Any, Dict, List, Optional, Set

from config import Config
from database import EntityStore
from errors import (
    AuthorizationError,
    InvalidTransitionError,
    PortalError,
    ValidationError,
    require_text,
)
from logger import get_logger
from roles import Role, is_admin, is_mentor, resolve_role
from schemas import (
    ApplicationCreate,
    CareerResource,
    ChatMessage,
    Community,
    CommunityCreate,
    CommunityMember,
    CommunityPost,
    MentorshipRequest,
    MentorshipRequestCreate,
    MessageCreate,
    OpportunityCreate,
    OpportunityUpdate,
    PostCreate,
    ProfileUpdate,
    PromoteMentor,
    ReferralApplication,
    ReferralOpportunity,
    ResourceCreate,
    User,
)

logger = get_logger(component="workflows")

PENDING = "pending"
MENTORSHIP_RESPONSES = ("accepted", "rejected")
REVIEW_OUTCOMES = ("approved", "rejected")


def require_admin(actor: Dict[str, Any], action: str) -> None:
    if not is_admin(actor):
        raise AuthorizationError(f"Only administrators can {action}")


def split_list(values: Optional[List[str]]) -> List[str]:
    """Trim entries and drop blanks, as comma-separated form input arrives."""
    return [v.strip() for v in (values or []) if v and v.strip()]


# ---------- Mentorship ----------

def request_mentorship(
    store: EntityStore, student: Dict[str, Any], payload: MentorshipRequestCreate
) -> Dict[str, Any]:
    ensure_role(student, Role.USER)
    require_text(payload.model_dump(), "domain", "message")
    if payload.mentor_id == student["id"]:
        raise ValidationError("You cannot request mentorship from yourself")

    mentor = store.collection(User).get(payload.mentor_id)
    if not is_mentor(mentor):
        raise ValidationError("Requested user is not a mentor")

    requests = store.collection(MentorshipRequest)
    existing = requests.filter({"student_id": student["id"], "mentor_id": mentor["id"]})
    if any(r["status"] != "rejected" for r in existing):
        raise ValidationError("Mentorship request already exists")

    record = MentorshipRequest(
        student_id=student["id"],
        mentor_id=mentor["id"],
        domain=payload.domain.strip(),
        message=payload.message.strip(),
        goals=payload.goals,
    )
    created = requests.create(record.model_dump())
    logger.info(
        "Mentorship request created",
        request_id=created["id"],
        student_id=student["id"],
        mentor_id=mentor["id"],
    )
    return created


def respond_to_request(
    store: EntityStore, actor: Dict[str, Any], request_id: str, status: str
) -> Dict[str, Any]:
    requests = store.collection(MentorshipRequest)
    request = requests.get(request_id)

    if actor["id"] != request["mentor_id"]:
        logger.warning(
            "Mentorship response refused", request_id=request_id, actor_id=actor["id"]
        )
        raise AuthorizationError("Only the requested mentor can respond to this request")
    if status not in MENTORSHIP_RESPONSES:
        raise ValidationError(f"Status must be one of: {', '.join(MENTORSHIP_RESPONSES)}")
    if request["status"] != PENDING:
        raise InvalidTransitionError("MentorshipRequest", request["status"], status)

    updated = requests.update(request_id, {"status": status})
    logger.info("Mentorship request answered", request_id=request_id, status=status)
    return updated


def list_requests(
    store: EntityStore, mentor_id: Optional[str] = None, student_id: Optional[str] = None
) -> List[Dict[str, Any]]:
    filt: Dict[str, Any] = {}
    if mentor_id:
        filt["mentor_id"] = mentor_id
    if student_id:
        filt["student_id"] = student_id
    return store.collection(MentorshipRequest).filter(filt, order_by="-created_date")


# ---------- Referral opportunities ----------

def create_opportunity(
    store: EntityStore, actor: Dict[str, Any], payload: OpportunityCreate
) -> Dict[str, Any]:
    require_admin(actor, "post opportunities")
    require_text(payload.model_dump(), "company_name", "position", "description")

    data = payload.model_dump(mode="json")
    data["posted_by"] = payload.posted_by or actor["id"]
    if data["posted_by"] != actor["id"]:
        # Unknown posters raise NotFoundError
        store.collection(User).get(data["posted_by"])
    data["required_skills"] = split_list(payload.required_skills)

    record = ReferralOpportunity(**data)
    created = store.collection(ReferralOpportunity).create(record.model_dump(mode="json"))
    logger.info(
        "Opportunity posted",
        opportunity_id=created["id"],
        company_name=created["company_name"],
        posted_by=created["posted_by"],
    )
    return created


def update_opportunity(
    store: EntityStore, actor: Dict[str, Any], opportunity_id: str, payload: OpportunityUpdate
) -> Dict[str, Any]:
    require_admin(actor, "edit opportunities")
    changes = {k: v for k, v in payload.model_dump(mode="json").items() if v is not None}
    for name in ("company_name", "position", "description"):
        if name in changes:
            require_text(changes, name)
    if "required_skills" in changes:
        changes["required_skills"] = split_list(changes["required_skills"])
    if "posted_by" in changes:
        store.collection(User).get(changes["posted_by"])
    return store.collection(ReferralOpportunity).update(opportunity_id, changes)


def toggle_opportunity(
    store: EntityStore, actor: Dict[str, Any], opportunity_id: str
) -> Dict[str, Any]:
    require_admin(actor, "change opportunity status")
    opportunities = store.collection(ReferralOpportunity)
    opportunity = opportunities.get(opportunity_id)
    updated = opportunities.update(opportunity_id, {"is_active": not opportunity.get("is_active", True)})
    logger.info("Opportunity toggled", opportunity_id=opportunity_id, is_active=updated["is_active"])
    return updated


def deadline_passed(opportunity: Dict[str, Any], today: Optional[date] = None) -> bool:
    deadline = opportunity.get("application_deadline")
    if not deadline:
        return False
    if isinstance(deadline, str):
        deadline = date.fromisoformat(deadline[:10])
    return deadline < (today or date.today())


# ---------- Referral applications ----------

def apply_for_referral(
    store: EntityStore,
    applicant: Dict[str, Any],
    opportunity_id: str,
    payload: ApplicationCreate,
) -> Dict[str, Any]:
    ensure_role(applicant, Role.USER)
    require_text(payload.model_dump(), "cover_note", "resume_url")

    opportunity = store.collection(ReferralOpportunity).get(opportunity_id)
    if applicant["id"] == opportunity["posted_by"]:
        raise ValidationError("You cannot apply to an opportunity you posted")
    if not opportunity.get("is_active", True):
        raise ValidationError("This opportunity is no longer accepting applications")
    if deadline_passed(opportunity):
        raise ValidationError("The application deadline for this opportunity has passed")

    applications = store.collection(ReferralApplication)
    if applications.filter({"opportunity_id": opportunity_id, "applicant_id": applicant["id"]}):
        raise ValidationError("Application already exists")

    record = ReferralApplication(
        opportunity_id=opportunity_id,
        applicant_id=applicant["id"],
        resume_url=payload.resume_url.strip(),
        cover_note=payload.cover_note.strip(),
    )
    created = applications.create(record.model_dump())
    logger.info(
        "Referral application submitted",
        application_id=created["id"],
        opportunity_id=opportunity_id,
        applicant_id=applicant["id"],
    )
    return created


def review_application(
    store: EntityStore,
    actor: Dict[str, Any],
    application_id: str,
    status: str,
    reviewer_notes: Optional[str] = None,
) -> Dict[str, Any]:
    applications = store.collection(ReferralApplication)
    application = applications.get(application_id)
    opportunity = store.collection(ReferralOpportunity).get(application["opportunity_id"])

    if actor["id"] == application["applicant_id"]:
        raise AuthorizationError("You cannot review your own application")
    if actor["id"] != opportunity["posted_by"] and not is_admin(actor):
        logger.warning(
            "Application review refused", application_id=application_id, actor_id=actor["id"]
        )
        raise AuthorizationError("Only the opportunity poster can review this application")
    if status not in REVIEW_OUTCOMES:
        raise ValidationError(f"Status must be one of: {', '.join(REVIEW_OUTCOMES)}")
    if application["status"] != PENDING:
        raise InvalidTransitionError("ReferralApplication", application["status"], status)

    notes = (reviewer_notes or "").strip() or f"Application {status} by alumni"
    updated = applications.update(application_id, {"status": status, "reviewer_notes": notes})
    logger.info(
        "Referral application reviewed",
        application_id=application_id,
        status=status,
        reviewer_id=actor["id"],
    )
    return updated


# ---------- Chat ----------

def require_chat_party(store: EntityStore, actor: Dict[str, Any], request_id: str) -> Dict[str, Any]:
    request = store.collection(MentorshipRequest).get(request_id)
    if actor["id"] not in (request["student_id"], request["mentor_id"]):
        raise AuthorizationError("Only the mentor and student of this mentorship can use its chat")
    return request


def send_message(
    store: EntityStore, sender: Dict[str, Any], request_id: str, payload: MessageCreate
) -> Dict[str, Any]:
    request = require_chat_party(store, sender, request_id)
    if request["status"] != "accepted":
        raise ValidationError("Chat is available once the mentorship request is accepted")
    if not (payload.content or "").strip() and not payload.file_url:
        raise ValidationError("A message needs text content or a file")

    receiver_id = request["mentor_id"] if sender["id"] == request["student_id"] else request["student_id"]
    record = ChatMessage(
        mentorship_request_id=request_id,
        sender_id=sender["id"],
        receiver_id=receiver_id,
        content=payload.content or "",
        file_url=payload.file_url,
        file_name=payload.file_name,
    )
    created = store.collection(ChatMessage).create(record.model_dump())
    logger.info("Chat message sent", request_id=request_id, message_id=created["id"])
    return created


def list_messages(store: EntityStore, actor: Dict[str, Any], request_id: str) -> List[Dict[str, Any]]:
    if not is_admin(actor):
        require_chat_party(store, actor, request_id)
    return store.collection(ChatMessage).filter(
        {"mentorship_request_id": request_id}, order_by="created_date"
    )


# ---------- Communities ----------

def create_community(store: EntityStore, actor: Dict[str, Any], payload: CommunityCreate) -> Dict[str, Any]:
    require_admin(actor, "create communities")
    require_text(payload.model_dump(), "name", "description")
    record = Community(
        name=payload.name.strip(),
        description=payload.description.strip(),
        cover_image_url=payload.cover_image_url or None,
    )
    created = store.collection(Community).create(record.model_dump())
    logger.info("Community created", community_id=created["id"], name=created["name"])
    return created


def join_community(store: EntityStore, actor: Dict[str, Any], community_id: str) -> Dict[str, Any]:
    store.collection(Community).get(community_id)
    members = store.collection(CommunityMember)
    existing = members.filter({"community_id": community_id, "user_id": actor["id"]}, limit=1)
    if existing:
        return existing[0]
    created = members.create(CommunityMember(community_id=community_id, user_id=actor["id"]).model_dump())
    logger.info("Community joined", community_id=community_id, user_id=actor["id"])
    return created


def create_post(
    store: EntityStore, actor: Dict[str, Any], community_id: str, payload: PostCreate
) -> Dict[str, Any]:
    require_admin(actor, "publish community posts")
    require_text(payload.model_dump(), "title", "content")
    store.collection(Community).get(community_id)

    record = CommunityPost(
        community_id=community_id,
        author_id=actor["id"],
        title=payload.title.strip(),
        content=payload.content.strip(),
        post_type=payload.post_type,
        opportunity_id=payload.opportunity_id or None,
        tags=split_list(payload.tags),
    )
    created = store.collection(CommunityPost).create(record.model_dump())
    logger.info("Community post published", community_id=community_id, post_id=created["id"])
    return created


# ---------- Career resources ----------

def create_resource(store: EntityStore, actor: Dict[str, Any], payload: ResourceCreate) -> Dict[str, Any]:
    require_text(payload.model_dump(), "title", "content_url")
    record = CareerResource(
        title=payload.title.strip(),
        description=payload.description,
        category=payload.category,
        type=payload.type,
        content_url=payload.content_url.strip(),
        uploaded_by=actor["id"],
        # Auto-approve for now
        is_approved=True,
    )
    created = store.collection(CareerResource).create(record.model_dump())
    logger.info("Career resource shared", resource_id=created["id"], uploaded_by=actor["id"])
    return created


def filter_resources(
    resources: List[Dict[str, Any]], category: Optional[str] = None, search: Optional[str] = None
) -> List[Dict[str, Any]]:
    term = (search or "").strip().lower()
    out = []
    for r in resources:
        if category and category != "all" and r.get("category") != category:
            continue
        if term and term not in (r.get("title") or "").lower() and term not in (r.get("description") or "").lower():
            continue
        out.append(r)
    return out


def list_resources(
    store: EntityStore, category: Optional[str] = None, search: Optional[str] = None
) -> List[Dict[str, Any]]:
    approved = store.collection(CareerResource).filter({"is_approved": True}, order_by="-created_date")
    return filter_resources(approved, category, search)


class ResourceBoard:
    """
    Per-session view of career resources with an optimistic like counter.

    A like bumps the local count right away and then persists the new
    value (last writer wins). If the write fails the local count and the
    liked mark are restored and the error is re-raised. A resource can be
    liked once per board.
    """

    def __init__(self, store: EntityStore):
        self._store = store
        self._resources = store.collection(CareerResource)
        self.liked: Set[str] = set()
        self.resources: Dict[str, Dict[str, Any]] = {}

    def load(self, category: Optional[str] = None, search: Optional[str] = None) -> List[Dict[str, Any]]:
        self.resources = {r["id"]: r for r in list_resources(self._store)}
        return [self.decorate(r) for r in filter_resources(list(self.resources.values()), category, search)]

    def decorate(self, resource: Dict[str, Any]) -> Dict[str, Any]:
        return {**resource, "liked": resource["id"] in self.liked}

    def like(self, resource_id: str) -> Dict[str, Any]:
        if resource_id in self.liked and resource_id in self.resources:
            return self.decorate(self.resources[resource_id])

        previous = self.resources.get(resource_id) or self._resources.get(resource_id)
        current = previous.get("likes_count") or 0

        self.liked.add(resource_id)
        self.resources[resource_id] = {**previous, "likes_count": current + 1}
        try:
            persisted = self._resources.update(resource_id, {"likes_count": current + 1})
        except PortalError as e:
            self.resources[resource_id] = previous
            self.liked.discard(resource_id)
            logger.warning("Like rolled back", resource_id=resource_id, error=e.detail)
            raise
        self.resources[resource_id] = persisted
        return self.decorate(persisted)


# ---------- Profiles ----------

def update_profile(
    store: EntityStore, actor: Dict[str, Any], user_id: str, payload: ProfileUpdate
) -> Dict[str, Any]:
    if actor["id"] != user_id and not is_admin(actor):
        raise AuthorizationError("You can only edit your own profile")
    changes = {k: v for k, v in payload.model_dump().items() if v is not None}
    if "role" in changes and not is_admin(actor):
        raise AuthorizationError("Only administrators can change roles")
    if "full_name" in changes:
        require_text(changes, "full_name")
    for name in ("expertise_domains", "skills"):
        if name in changes:
            changes[name] = split_list(changes[name])
    updated = store.collection(User).update(user_id, changes)
    logger.info("Profile updated", user_id=user_id, actor_id=actor["id"], fields=sorted(changes))
    return updated


def promote_to_mentor(
    store: EntityStore, actor: Dict[str, Any], user_id: str, payload: PromoteMentor
) -> Dict[str, Any]:
    require_admin(actor, "promote mentors")
    users = store.collection(User)
    user = users.get(user_id)

    changes: Dict[str, Any] = {
        "expertise_domains": split_list(payload.expertise_domains),
        "current_company": payload.current_company,
        "position": payload.position,
        "bio": payload.bio,
        "year": payload.year or user.get("year"),
        "batch": payload.batch or user.get("batch"),
    }
    if not changes["expertise_domains"] and changes["year"] != "Alumni":
        raise ValidationError("A mentor needs at least one expertise domain or Alumni year")

    updated = users.update(user_id, changes)
    logger.info(
        "User promoted to mentor",
        user_id=user_id,
        role=resolve_role(updated).value,
        expertise_domains=updated["expertise_domains"],
    )
    return updated


def ensure_role(actor: Dict[str, Any], *roles: Role) -> Role:
    role = resolve_role(actor)
    if role not in roles:
        raise AuthorizationError(f"This page is for {' or '.join(r.value for r in roles)} accounts")
    return role


# ---------- Accounts ----------

def register_user(store: EntityStore, payload: User) -> Dict[str, Any]:
    require_text(payload.model_dump(), "email", "full_name")
    email = payload.email.strip().lower()
    users = store.collection(User)
    if users.filter({"email": email}, limit=1):
        raise ValidationError("Email already registered")

    data = payload.model_dump()
    data["email"] = email
    data["full_name"] = payload.full_name.strip()
    data["expertise_domains"] = split_list(payload.expertise_domains)
    data["skills"] = split_list(payload.skills)
    # Admin accounts come from configuration, never from the signup form
    data["role"] = "admin" if email in Config.ADMIN_EMAILS else "user"

    created = users.create(data)
    logger.info("User registered", user_id=created["id"], role=resolve_role(created).value)
    return created
