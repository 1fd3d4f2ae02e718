"""
External collaborators: identity, file upload and LLM invocation.

Upload and LLM services are reached over HTTP with httpx. Neither call is
retried; an I/O failure becomes a TransientIOError for the caller to show.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from config import Config
from database import EntityStore
from errors import AuthError, NotFoundError, TransientIOError, ValidationError
from logger import get_logger
from schemas import User
from workflows import ResourceBoard

logger = get_logger(component="integrations")

RESUME_CONTENT_TYPES = {"application/pdf"}


# ---------- Identity ----------

class Session:
    def __init__(self, token: str, user_id: str, store: EntityStore):
        self.token = token
        self.user_id = user_id
        self.board = ResourceBoard(store)


class IdentityProvider:
    """
    Opaque-token sessions held in process memory.

    The current user is re-read from the store on every ``me`` call, so
    profile edits and promotions show up on the next request.
    """

    def __init__(self, store: EntityStore):
        self._store = store
        self._sessions: Dict[str, Session] = {}

    def login(self, email: str) -> Dict[str, Any]:
        email = (email or "").strip().lower()
        if not email:
            raise ValidationError("Email is required")
        users = self._store.collection(User).filter({"email": email}, limit=1)
        if not users:
            raise AuthError("No account registered for this email")
        user = users[0]
        token = uuid.uuid4().hex
        self._sessions[token] = Session(token, user["id"], self._store)
        logger.info("User logged in", user_id=user["id"])
        return {"token": token, "user": user}

    def session(self, token: Optional[str]) -> Session:
        session = self._sessions.get(token or "")
        if session is None:
            raise AuthError("User not authenticated")
        return session

    def me(self, token: Optional[str]) -> Dict[str, Any]:
        session = self.session(token)
        try:
            return self._store.collection(User).get(session.user_id)
        except NotFoundError:
            self._sessions.pop(session.token, None)
            raise AuthError("User not authenticated")

    def logout(self, token: Optional[str]) -> None:
        session = self._sessions.pop(token or "", None)
        if session is not None:
            logger.info("User logged out", user_id=session.user_id)


# ---------- File upload ----------

class UploadClient:
    def __init__(
        self,
        base_url: Optional[str] = Config.UPLOAD_API_URL,
        timeout: float = Config.HTTP_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.transport = transport

    def upload(self, filename: str, content: bytes, content_type: str) -> Dict[str, str]:
        if not self.base_url:
            raise TransientIOError("File upload service is not configured")
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(
                    self.base_url,
                    files={"file": (filename, content, content_type)},
                )
                response.raise_for_status()
                file_url = response.json()["file_url"]
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error("File upload failed", file_name=filename, error=str(e))
            raise TransientIOError("File upload failed, please try again") from e
        logger.info("File uploaded", file_name=filename, file_url=file_url)
        return {"file_url": file_url}

    def upload_resume(self, filename: str, content: bytes, content_type: str) -> Dict[str, str]:
        if content_type not in RESUME_CONTENT_TYPES:
            raise ValidationError("Please select a PDF file for your resume")
        return self.upload(filename, content, content_type)


# ---------- LLM ----------

class LLMClient:
    def __init__(
        self,
        url: Optional[str] = Config.LLM_API_URL,
        api_key: Optional[str] = Config.LLM_API_KEY,
        timeout: float = Config.HTTP_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    def invoke(self, prompt: str, add_context_from_internet: bool = False) -> str:
        if not self.url:
            raise TransientIOError("AI assistant is not configured")
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(
                    self.url,
                    json={"prompt": prompt, "add_context_from_internet": add_context_from_internet},
                    headers=headers,
                )
                response.raise_for_status()
                body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("LLM invocation failed", error=str(e))
            raise TransientIOError("The AI assistant is unavailable right now") from e

        if isinstance(body, str):
            return body
        if isinstance(body, dict) and isinstance(body.get("response"), str):
            return body["response"]
        logger.error("Unexpected LLM response shape", body_type=type(body).__name__)
        raise TransientIOError("The AI assistant returned an unreadable answer")


# ---------- AI assistant ----------

WELCOME_MESSAGE = """Welcome to the IIITA AI Assistant! 🎓

I'm here to help you with:
• Campus life and facilities information
• Career guidance and resume tips
• Interview preparation strategies
• Course recommendations
• Placement and internship advice
• Alumni networking suggestions

How can I assist you today?"""

SUGGESTED_PROMPTS = [
    {"title": "Campus Life", "prompt": "Tell me about hostels and campus facilities at IIITA"},
    {"title": "Resume Review", "prompt": "How can I improve my resume for software engineering roles?"},
    {"title": "Interview Prep", "prompt": "Give me tips for preparing for technical interviews"},
    {"title": "Career Path", "prompt": "What career paths should I consider as a CSE student?"},
]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def welcome_message() -> Dict[str, Any]:
    return {
        "type": "bot",
        "content": WELCOME_MESSAGE,
        "timestamp": _now_iso(),
        "suggested_prompts": SUGGESTED_PROMPTS,
    }


def build_assistant_prompt(user: Optional[Dict[str, Any]], question: str) -> str:
    if user:
        user_context = (
            f"\n- Name: {user.get('full_name')}"
            f"\n- Branch: {user.get('branch') or 'Not specified'}"
            f"\n- Year: {user.get('year') or 'Not specified'}"
            f"\n- Skills: {', '.join(user.get('skills') or []) or 'Not specified'}\n"
        )
    else:
        user_context = "User information not available"

    context = (
        "You are an AI assistant for IIITA (Indian Institute of Information Technology Allahabad) students.\n"
        "You help with campus life, career guidance, academic advice, and placement preparation.\n\n"
        f"User context: {user_context}\n"
        "Provide helpful, accurate, and encouraging responses. "
        "If you don't know specific IIITA information, be honest about it."
    )
    return f"{context}\n\nUser question: {question}"


def ask_assistant(llm: LLMClient, user: Optional[Dict[str, Any]], question: str) -> Dict[str, str]:
    question = (question or "").strip()
    if not question:
        raise ValidationError("Message is required")
    answer = llm.invoke(build_assistant_prompt(user, question), add_context_from_internet=True)
    return {"type": "bot", "content": answer, "timestamp": _now_iso()}
