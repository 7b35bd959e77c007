"""User resolvers: registration, login, lookup, listing and deletion."""

import logging
from functools import lru_cache

from pydantic import EmailStr, TypeAdapter, ValidationError
from sqlalchemy.exc import IntegrityError

from app.core.database import Store
from app.core.security import (
    EMAIL_MAX_LEN,
    NAME_MAX_LEN,
    PASSWORD_MAX_LEN,
    create_access_token,
    hash_password,
    verify_password,
)
from app.schemas.auth import Identity, LoginResult, UserPublic
from app.services import authorization
from app.services.errors import (
    DuplicateEmail,
    FieldTooLong,
    IndexOutOfRange,
    InvalidCredentials,
    InvalidEmail,
    MissingFields,
)

logger = logging.getLogger(__name__)

_email_adapter = TypeAdapter(EmailStr)


def normalize_email(email: str | None) -> str:
    """Trim and lower-case; emails are compared case-insensitively everywhere."""
    return (email or "").strip().lower()


def validate_email(email: str) -> str:
    if len(email) > EMAIL_MAX_LEN:
        raise InvalidEmail()
    try:
        _email_adapter.validate_python(email)
    except ValidationError as e:
        raise InvalidEmail(cause=e) from e
    return email


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return hash_password("not-a-real-password")


def is_valid_index(index: object, length: int) -> bool:
    """Positional addresses must be plain integers in [0, length)."""
    return isinstance(index, int) and not isinstance(index, bool) and 0 <= index < length


def login(store: Store, email: str, password: str) -> LoginResult:
    """
    Authenticate with email and password and issue a session token.

    Unknown email and wrong password fail with the same InvalidCredentials error; a hash
    comparison runs in both cases.
    """
    normalized = normalize_email(email)
    user = store.get_user_by_email(normalized) if normalized else None
    if user is None:
        verify_password(password or "", _dummy_hash())
        logger.info("Login failed", extra={"reason": "invalid_credentials"})
        raise InvalidCredentials()
    if not verify_password(password or "", user.password_hash):
        logger.info("Login failed", extra={"reason": "invalid_credentials"})
        raise InvalidCredentials()

    public = UserPublic.from_model(user)
    token = create_access_token(
        user_id=public.id,
        email=public.email,
        name=public.name,
        role=public.role,
    )
    return LoginResult(token=token, user=public)


def create_user(
    store: Store,
    caller: Identity | None,
    name: str,
    email: str,
    password: str,
    role: str | None = None,
) -> UserPublic:
    """Register a user. Public; the requested role is honored only for administrator callers."""
    name = (name or "").strip()
    normalized = normalize_email(email)
    missing = [
        field
        for field, value in (("name", name), ("email", normalized), ("password", password))
        if not value
    ]
    if missing:
        raise MissingFields(missing)
    too_long = [
        field
        for field, value, limit in (("name", name, NAME_MAX_LEN), ("password", password, PASSWORD_MAX_LEN))
        if len(value) > limit
    ]
    if too_long:
        raise FieldTooLong(too_long)
    validate_email(normalized)

    if store.get_user_by_email(normalized) is not None:
        raise DuplicateEmail()

    assigned_role = authorization.effective_role(caller, role)
    try:
        user = store.add_user(
            name=name,
            email=normalized,
            password_hash=hash_password(password),
            role=assigned_role,
        )
    except IntegrityError as e:
        # Lost a race with a concurrent registration of the same email.
        raise DuplicateEmail(cause=e) from e

    logger.info("User created", extra={"user_id": user.id, "role": assigned_role})
    return UserPublic.from_model(user)


def list_users(store: Store, caller: Identity | None) -> list[UserPublic]:
    authorization.can_list_users(caller).enforce()
    return [UserPublic.from_model(u) for u in store.list_users()]


def get_user_by_email(store: Store, caller: Identity | None, email: str) -> UserPublic | None:
    normalized = normalize_email(email)
    authorization.can_view_user(caller, normalized).enforce()
    if not normalized:
        raise MissingFields(["email"])
    user = store.get_user_by_email(normalized)
    return UserPublic.from_model(user) if user is not None else None


def delete_user_by_email(store: Store, caller: Identity | None, email: str) -> bool:
    """Delete by email. Idempotent: returns whether a user was actually removed."""
    authorization.can_delete_user(caller).enforce()
    normalized = normalize_email(email)
    if not normalized:
        raise MissingFields(["email"])
    removed = store.delete_user_by_email(normalized)
    logger.info("User delete by email", extra={"removed": removed})
    return removed


def delete_user_by_index(store: Store, caller: Identity | None, index: int) -> bool:
    """
    Delete the user at a position of the full user listing.

    Compatibility addressing: the listing snapshot and the delete are separate store calls,
    so a concurrent write in between can shift positions. Prefer delete_user_by_email.
    """
    authorization.can_delete_user(caller).enforce()
    users = store.list_users()
    if not is_valid_index(index, len(users)):
        raise IndexOutOfRange()
    target = users[index]
    removed = store.delete_user_by_id(target.id)
    logger.info(
        "User delete by index",
        extra={"index": index, "user_id": target.id, "removed": removed},
    )
    return removed
