"""Authorization policy: pure decisions on who may see or change users and postings.

Every function takes the caller identity (None when unauthenticated) and, where relevant,
the target, and returns a Decision. Nothing here touches the store or raises on its own;
callers decide when to enforce.
"""

from dataclasses import dataclass

from app.schemas.auth import DEFAULT_ROLE, ROLE_VALUES, Identity, Role
from app.services.errors import Forbidden, ResolverError, Unauthorized


@dataclass(frozen=True)
class Decision:
    """Allow, or Deny with the failure the caller should see."""

    allowed: bool
    reason: str = ""
    error: type[ResolverError] | None = None

    def enforce(self) -> None:
        """Raise the carried failure when the decision is a denial."""
        if not self.allowed:
            raise (self.error or Forbidden)(self.reason or None)


ALLOW = Decision(allowed=True)


def _unauthenticated() -> Decision:
    return Decision(allowed=False, reason="Not authenticated.", error=Unauthorized)


def _forbidden(reason: str) -> Decision:
    return Decision(allowed=False, reason=reason, error=Forbidden)


def authenticated(caller: Identity | None) -> Decision:
    return ALLOW if caller is not None else _unauthenticated()


def _is_owner(caller: Identity, owner_email: str) -> bool:
    return caller.email.lower() == (owner_email or "").lower()


# Users


def can_list_users(caller: Identity | None) -> Decision:
    if caller is None:
        return _unauthenticated()
    if not caller.is_admin:
        return _forbidden("Only administrators can list users.")
    return ALLOW


def can_view_user(caller: Identity | None, email: str) -> Decision:
    if caller is None:
        return _unauthenticated()
    if caller.is_admin or _is_owner(caller, email):
        return ALLOW
    return _forbidden("You do not have permission to view this user.")


def effective_role(caller: Identity | None, requested: str | None) -> Role:
    """Registration is public; only an administrator may choose the new user's role."""
    if caller is not None and caller.is_admin and requested:
        normalized = requested.strip().upper()
        if normalized in ROLE_VALUES:
            return normalized  # type: ignore[return-value]
    return DEFAULT_ROLE


def can_delete_user(caller: Identity | None) -> Decision:
    if caller is None:
        return _unauthenticated()
    if not caller.is_admin:
        return _forbidden("Only administrators can delete users.")
    return ALLOW


# Postings


def can_list_postings(caller: Identity | None) -> Decision:
    return authenticated(caller)


def posting_owner_filter(caller: Identity) -> str | None:
    """Owner email to restrict a listing to, or None for the full listing (admins)."""
    return None if caller.is_admin else caller.email.lower()


def can_view_posting(caller: Identity | None, owner_email: str) -> Decision:
    if caller is None:
        return _unauthenticated()
    if caller.is_admin or _is_owner(caller, owner_email):
        return ALLOW
    return _forbidden("You do not have permission to view this posting.")


def can_create_posting(caller: Identity | None) -> Decision:
    return authenticated(caller)


def can_modify_posting(caller: Identity | None, owner_email: str) -> Decision:
    """Update and delete share one rule: the owner or an administrator."""
    if caller is None:
        return _unauthenticated()
    if caller.is_admin or _is_owner(caller, owner_email):
        return ALLOW
    return _forbidden("You do not have permission to modify this posting.")
