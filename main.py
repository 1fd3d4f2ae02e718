import os
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

import views
import workflows
from config import Config
from database import EntityStore, create_store
from errors import AuthorizationError, PortalError, ValidationError
from integrations import IdentityProvider, LLMClient, Session, UploadClient, ask_assistant, welcome_message
from logger import get_logger
from roles import Role, resolve_role
from schemas import (
    ApplicationCreate,
    AssistantQuestion,
    CommunityCreate,
    LoginRequest,
    MentorshipRequestCreate,
    MessageCreate,
    OpportunityCreate,
    OpportunityUpdate,
    PostCreate,
    ProfileUpdate,
    PromoteMentor,
    ResourceCreate,
    RespondAction,
    ReviewAction,
    User,
)

logger = get_logger(component="api")
bearer = HTTPBearer(auto_error=False)


def create_app(
    store: Optional[EntityStore] = None,
    uploads: Optional[UploadClient] = None,
    llm: Optional[LLMClient] = None,
) -> FastAPI:
    app = FastAPI(title="Campus Connect API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=Config.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.store = store or create_store()
    app.state.identity = IdentityProvider(app.state.store)
    app.state.uploads = uploads or UploadClient()
    app.state.llm = llm or LLMClient()

    @app.exception_handler(PortalError)
    async def portal_error_handler(request: Request, exc: PortalError):
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            "Request failed",
            path=request.url.path,
            method=request.method,
            error=type(exc).__name__,
            detail=exc.detail,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    register_routes(app)
    return app


# ---------- Dependencies ----------

def get_store(request: Request) -> EntityStore:
    return request.app.state.store


def get_identity(request: Request) -> IdentityProvider:
    return request.app.state.identity


def get_token(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer)) -> Optional[str]:
    return credentials.credentials if credentials else None


def current_user(
    token: Optional[str] = Depends(get_token),
    identity: IdentityProvider = Depends(get_identity),
) -> Dict[str, Any]:
    return identity.me(token)


def current_session(
    token: Optional[str] = Depends(get_token),
    identity: IdentityProvider = Depends(get_identity),
) -> Session:
    return identity.session(token)


def register_routes(app: FastAPI) -> None:

    @app.get("/")
    def read_root():
        return {"message": "Campus Connect API running"}

    @app.get("/test")
    def test_database(store: EntityStore = Depends(get_store)):
        status = store.status()
        response = {
            "backend": "✅ Running",
            "database": "✅ Connected & Working" if status["connected"] else "❌ Not Available",
            "database_backend": status["backend"],
            "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
            "collections": status.get("collections", []),
        }
        if not status["connected"]:
            response["database"] = f"⚠️ Connected but Error: {status.get('error')}"
        return response

    # ---------- Auth ----------
    @app.post("/auth/login")
    def login(body: LoginRequest, identity: IdentityProvider = Depends(get_identity)):
        result = identity.login(body.email)
        return {"token": result["token"], **views.session_summary(result["user"])}

    @app.post("/auth/logout")
    def logout(token: Optional[str] = Depends(get_token), identity: IdentityProvider = Depends(get_identity)):
        identity.logout(token)
        return {"status": "logged_out"}

    @app.get("/auth/me")
    def me(user: Dict[str, Any] = Depends(current_user)):
        return views.session_summary(user)

    # ---------- Users ----------
    @app.post("/users", status_code=201)
    def create_user(user: User, store: EntityStore = Depends(get_store)):
        return workflows.register_user(store, user)

    @app.get("/users")
    def list_users(
        role: Optional[Role] = None,
        store: EntityStore = Depends(get_store),
        user: Dict[str, Any] = Depends(current_user),
    ):
        users = store.collection(User).list(order_by="-created_date")
        if role:
            users = [u for u in users if resolve_role(u) == role]
        return users

    @app.get("/users/{user_id}")
    def get_user(user_id: str, store: EntityStore = Depends(get_store), user: Dict[str, Any] = Depends(current_user)):
        return store.collection(User).get(user_id)

    @app.patch("/users/{user_id}")
    def update_user(
        user_id: str,
        payload: ProfileUpdate,
        store: EntityStore = Depends(get_store),
        user: Dict[str, Any] = Depends(current_user),
    ):
        return workflows.update_profile(store, user, user_id, payload)

    @app.post("/users/{user_id}/promote")
    def promote_user(
        user_id: str,
        payload: PromoteMentor,
        store: EntityStore = Depends(get_store),
        user: Dict[str, Any] = Depends(current_user),
    ):
        return workflows.promote_to_mentor(store, user, user_id, payload)

    # ---------- Dashboards ----------
    @app.get("/dashboard")
    def dashboard(store: EntityStore = Depends(get_store), user: Dict[str, Any] = Depends(current_user)):
        return views.dashboard(store, user)

    @app.get("/connections")
    def connections(store: EntityStore = Depends(get_store), user: Dict[str, Any] = Depends(current_user)):
        return views.my_connections(store, user)

    # ---------- Mentorship ----------
    @app.get("/mentors")
    def list_mentors(
        search: Optional[str] = None,
        branch: Optional[str] = None,
        year: Optional[str] = None,
        store: EntityStore = Depends(get_store),
        user: Dict[str, Any] = Depends(current_user),
    ):
        return views.mentor_directory(store, user, search=search, branch=branch, year=year)

    @app.get("/mentors/dashboard")
    def mentor_dashboard(store: EntityStore = Depends(get_store), user: Dict[str, Any] = Depends(current_user)):
        workflows.ensure_role(user, Role.MENTOR, Role.ADMIN)
        return views.mentor_dashboard(store, user)

    @app.get("/admin/mentors")
    def admin_mentors(
        search: Optional[str] = None,
        status: Optional[str] = None,
        store: EntityStore = Depends(get_store),
        user: Dict[str, Any] = Depends(current_user),
    ):
        return views.admin_mentors(store, user, search=search, status=status)

    @app.post("/mentorship-requests", status_code=201)
    def create_mentorship_request(
        payload: MentorshipRequestCreate,
        store: EntityStore = Depends(get_store),
        user: Dict[str, Any] = Depends(current_user),
    ):
        return workflows.request_mentorship(store, user, payload)

    @app.get("/mentorship-requests")
    def list_mentorship_requests(
        mentor_id: Optional[str] = None,
        student_id: Optional[str] = None,
        store: EntityStore = Depends(get_store),
        user: Dict[str, Any] = Depends(current_user),
    ):
        if resolve_role(user) != Role.ADMIN:
            # Non-admins only see their own side of the workflow
            if any(v and v != user["id"] for v in (mentor_id, student_id)):
                raise AuthorizationError("You can only list your own mentorship requests")
            if not mentor_id and not student_id:
                student_id = user["id"]
        return workflows.list_requests(store, mentor_id=mentor_id, student_id=student_id)

    @app.post("/mentorship-requests/{request_id}/respond")
    def respond_mentorship_request(
        request_id: str,
        action: RespondAction,
        store: EntityStore = Depends(get_store),
        user: Dict[str, Any] = Depends(current_user),
    ):
        return workflows.respond_to_request(store, user, request_id, action.status)

    # ---------- Chat ----------
    @app.get("/mentorship-requests/{request_id}/messages")
    def chat_thread(request_id: str, store: EntityStore = Depends(get_store), user: Dict[str, Any] = Depends(current_user)):
        return views.chat_thread(store, user, request_id)

    @app.post("/mentorship-requests/{request_id}/messages", status_code=201)
    def send_message(
        request_id: str,
        payload: MessageCreate,
        store: EntityStore = Depends(get_store),
        user: Dict[str, Any] = Depends(current_user),
    ):
        return workflows.send_message(store, user, request_id, payload)

    @app.post("/mentorship-requests/{request_id}/files", status_code=201)
    def send_file(
        request_id: str,
        request: Request,
        file: UploadFile = File(...),
        store: EntityStore = Depends(get_store),
        user: Dict[str, Any] = Depends(current_user),
    ):
        # Check membership before spending an upload
        workflows.require_chat_party(store, user, request_id)
        uploaded = request.app.state.uploads.upload(
            file.filename, file.file.read(), file.content_type or "application/octet-stream"
        )
        payload = MessageCreate(content="", file_url=uploaded["file_url"], file_name=file.filename)
        return workflows.send_message(store, user, request_id, payload)

    # ---------- Referrals ----------
    @app.get("/opportunities")
    def list_opportunities(store: EntityStore = Depends(get_store), user: Dict[str, Any] = Depends(current_user)):
        return views.opportunity_board(store, user)

    @app.post("/opportunities", status_code=201)
    def create_opportunity(
        payload: OpportunityCreate,
        store: EntityStore = Depends(get_store),
        user: Dict[str, Any] = Depends(current_user),
    ):
        return workflows.create_opportunity(store, user, payload)

    @app.patch("/opportunities/{opportunity_id}")
    def update_opportunity(
        opportunity_id: str,
        payload: OpportunityUpdate,
        store: EntityStore = Depends(get_store),
        user: Dict[str, Any] = Depends(current_user),
    ):
        return workflows.update_opportunity(store, user, opportunity_id, payload)

    @app.post("/opportunities/{opportunity_id}/toggle")
    def toggle_opportunity(
        opportunity_id: str,
        store: EntityStore = Depends(get_store),
        user: Dict[str, Any] = Depends(current_user),
    ):
        return workflows.toggle_opportunity(store, user, opportunity_id)

    @app.get("/admin/opportunities")
    def admin_opportunities(store: EntityStore = Depends(get_store), user: Dict[str, Any] = Depends(current_user)):
        return views.admin_opportunities(store, user)

    @app.post("/uploads/resume")
    def upload_resume(request: Request, file: UploadFile = File(...), user: Dict[str, Any] = Depends(current_user)):
        return request.app.state.uploads.upload_resume(
            file.filename, file.file.read(), file.content_type or ""
        )

    @app.post("/opportunities/{opportunity_id}/applications", status_code=201)
    def apply_for_referral(
        opportunity_id: str,
        payload: ApplicationCreate,
        store: EntityStore = Depends(get_store),
        user: Dict[str, Any] = Depends(current_user),
    ):
        return workflows.apply_for_referral(store, user, opportunity_id, payload)

    @app.post("/opportunities/{opportunity_id}/apply", status_code=201)
    def apply_with_resume(
        opportunity_id: str,
        request: Request,
        cover_note: str = Form(""),
        resume: UploadFile = File(...),
        store: EntityStore = Depends(get_store),
        user: Dict[str, Any] = Depends(current_user),
    ):
        # Validate before uploading so a blank note never costs an upload
        if not cover_note.strip():
            raise ValidationError("Missing required field(s): cover_note", fields=["cover_note"])
        uploaded = request.app.state.uploads.upload_resume(
            resume.filename, resume.file.read(), resume.content_type or ""
        )
        payload = ApplicationCreate(resume_url=uploaded["file_url"], cover_note=cover_note)
        return workflows.apply_for_referral(store, user, opportunity_id, payload)

    @app.get("/referrals/mine")
    def my_referrals(store: EntityStore = Depends(get_store), user: Dict[str, Any] = Depends(current_user)):
        return views.student_referrals(store, user)

    @app.get("/referrals/review")
    def referrals_to_review(store: EntityStore = Depends(get_store), user: Dict[str, Any] = Depends(current_user)):
        workflows.ensure_role(user, Role.MENTOR, Role.ADMIN)
        return views.alumni_referrals(store, user)

    @app.post("/applications/{application_id}/review")
    def review_application(
        application_id: str,
        action: ReviewAction,
        store: EntityStore = Depends(get_store),
        user: Dict[str, Any] = Depends(current_user),
    ):
        return workflows.review_application(
            store, user, application_id, action.status, action.reviewer_notes
        )

    # ---------- Communities ----------
    @app.get("/communities")
    def list_communities(store: EntityStore = Depends(get_store), user: Dict[str, Any] = Depends(current_user)):
        return views.community_overview(store, user)

    @app.post("/communities", status_code=201)
    def create_community(
        payload: CommunityCreate,
        store: EntityStore = Depends(get_store),
        user: Dict[str, Any] = Depends(current_user),
    ):
        return workflows.create_community(store, user, payload)

    @app.get("/communities/{community_id}")
    def community_feed(
        community_id: str,
        store: EntityStore = Depends(get_store),
        user: Dict[str, Any] = Depends(current_user),
    ):
        return views.community_feed(store, user, community_id)

    @app.post("/communities/{community_id}/join")
    def join_community(
        community_id: str,
        store: EntityStore = Depends(get_store),
        user: Dict[str, Any] = Depends(current_user),
    ):
        return workflows.join_community(store, user, community_id)

    @app.post("/communities/{community_id}/posts", status_code=201)
    def create_post(
        community_id: str,
        payload: PostCreate,
        store: EntityStore = Depends(get_store),
        user: Dict[str, Any] = Depends(current_user),
    ):
        return workflows.create_post(store, user, community_id, payload)

    # ---------- Career resources ----------
    @app.get("/resources")
    def list_resources(
        category: Optional[str] = None,
        search: Optional[str] = None,
        session: Session = Depends(current_session),
    ):
        return session.board.load(category=category, search=search)

    @app.post("/resources", status_code=201)
    def create_resource(
        payload: ResourceCreate,
        store: EntityStore = Depends(get_store),
        user: Dict[str, Any] = Depends(current_user),
    ):
        return workflows.create_resource(store, user, payload)

    @app.post("/resources/{resource_id}/like")
    def like_resource(resource_id: str, session: Session = Depends(current_session)):
        return session.board.like(resource_id)

    # ---------- AI assistant ----------
    @app.get("/assistant/welcome")
    def assistant_welcome():
        return welcome_message()

    @app.post("/assistant")
    def assistant(request: Request, body: AssistantQuestion, user: Dict[str, Any] = Depends(current_user)):
        return ask_assistant(request.app.state.llm, user, body.message)


app = create_app()


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", Config.PORT))
    uvicorn.run(app, host=Config.APP_HOST, port=port)
