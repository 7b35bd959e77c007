"""Identity, user and login schemas shared by resolvers and the transport binding."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["ADMIN", "USER"]

ROLE_VALUES: frozenset[str] = frozenset({"ADMIN", "USER"})
DEFAULT_ROLE: Role = "USER"


class Identity(BaseModel):
    """Authenticated caller derived from a verified token or the cookie session."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"


class UserPublic(BaseModel):
    """User as returned to callers (never includes the password hash)."""

    id: str
    name: str
    email: str
    role: Role

    @classmethod
    def from_model(cls, user: object) -> "UserPublic":
        return cls(
            id=str(user.id),
            name=user.name,
            email=user.email,
            role=user.role if user.role in ROLE_VALUES else DEFAULT_ROLE,
        )


class LoginResult(BaseModel):
    """Session token and the authenticated user."""

    token: str = Field(..., description="JWT access token")
    user: UserPublic
