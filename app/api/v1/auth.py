"""Caller identity resolution from a Bearer JWT or the cookie session."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import jwt
from starlette.requests import HTTPConnection

from app.core.security import decode_access_token
from app.schemas.auth import ROLE_VALUES, Identity

logger = logging.getLogger(__name__)

SESSION_USER_KEY = "user"
INVALID_TOKEN_MESSAGE = "Invalid or expired token."


@dataclass(frozen=True)
class ResolvedIdentity:
    """Identity for one request (None when anonymous) and why a presented token was rejected."""

    identity: Identity | None = None
    auth_error: str | None = None


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() != "bearer" or not credentials.strip():
        return None
    return credentials.strip()


def identity_from_claims(claims: Mapping[str, Any]) -> Identity | None:
    """Build an Identity from token or session claims; None when any claim is missing or unknown."""
    sub = claims.get("sub", claims.get("id"))
    email = claims.get("email")
    role = claims.get("role")
    if not sub or not email or role not in ROLE_VALUES:
        return None
    return Identity(
        id=str(sub),
        email=str(email).lower(),
        name=str(claims.get("name") or ""),
        role=role,
    )


def identity_from_token(token: str) -> ResolvedIdentity:
    try:
        claims = decode_access_token(token)
    except jwt.PyJWTError:
        return ResolvedIdentity(auth_error=INVALID_TOKEN_MESSAGE)
    identity = identity_from_claims(claims)
    if identity is None:
        return ResolvedIdentity(auth_error=INVALID_TOKEN_MESSAGE)
    return ResolvedIdentity(identity=identity)


def session_payload(identity: Identity) -> dict[str, str]:
    """Cookie session entry written on login."""
    return {"id": identity.id, "email": identity.email, "name": identity.name, "role": identity.role}


def resolve_identity(connection: HTTPConnection, allow_query_token: bool = False) -> ResolvedIdentity:
    """
    Identity for an HTTP request or WebSocket handshake.

    Order: Authorization Bearer header, then ?token= (WebSocket only), then the cookie session.
    A presented but invalid token does not fall back to the session.
    """
    token = _bearer_token(connection.headers.get("authorization"))
    if token is None and allow_query_token:
        token = connection.query_params.get("token") or None
    if token is not None:
        return identity_from_token(token)

    if "session" in connection.scope:
        entry = connection.session.get(SESSION_USER_KEY)
        if isinstance(entry, Mapping):
            identity = identity_from_claims(entry)
            if identity is not None:
                return ResolvedIdentity(identity=identity)
    return ResolvedIdentity()
