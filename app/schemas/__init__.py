"""Pydantic request/response schemas."""

from app.schemas.auth import (
    DEFAULT_ROLE,
    ROLE_VALUES,
    Identity,
    LoginResult,
    Role,
    UserPublic,
)
from app.schemas.health import HealthResponse
from app.schemas.posting import KIND_VALUES, PostingKind, PostingRead

__all__ = [
    "DEFAULT_ROLE",
    "HealthResponse",
    "Identity",
    "KIND_VALUES",
    "LoginResult",
    "PostingKind",
    "PostingRead",
    "ROLE_VALUES",
    "Role",
    "UserPublic",
]
