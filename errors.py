"""
Error taxonomy for the portal.

Every failure is scoped to the action that triggered it. The FastAPI app
maps each class to an HTTP status through ``status_code``.
"""

from typing import Any, Dict, Optional


class PortalError(Exception):
    status_code = 500

    def __init__(self, detail: str, **context: Any):
        super().__init__(detail)
        self.detail = detail
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.detail, "error": type(self).__name__}


class ValidationError(PortalError):
    """Required field missing or blank, or a create-time policy refusal."""

    status_code = 422


class AuthError(PortalError):
    """No session, or the session token is unknown."""

    status_code = 401


class AuthorizationError(PortalError):
    """The actor is not allowed to perform the action."""

    status_code = 403


class NotFoundError(PortalError):
    status_code = 404

    def __init__(self, entity: str, entity_id: Optional[str] = None):
        detail = f"{entity} not found" if entity_id is None else f"{entity} {entity_id} not found"
        super().__init__(detail, entity=entity, entity_id=entity_id)
        self.entity = entity
        self.entity_id = entity_id


class InvalidTransitionError(PortalError):
    status_code = 409

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            f"Invalid transition for {entity}: {current} -> {target}",
            current=current,
            target=target,
        )
        self.current = current
        self.target = target


class TransientIOError(PortalError):
    """Storage or network failure. Safe to retry from the client."""

    status_code = 503

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["retryable"] = True
        return out


def require_text(fields: Dict[str, Any], *names: str) -> None:
    """Raise ValidationError naming every field that is missing or blank."""
    missing = [n for n in names if not str(fields.get(n) or "").strip()]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}", fields=missing)
