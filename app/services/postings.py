"""Posting resolvers: create, read, update and delete volunteering postings, with notifications.

Mutations commit first and notify second; a notification failure never undoes or fails
the mutation (Notifier swallows and logs).
"""

import logging
from typing import Any

from app.core.database import Store
from app.schemas.auth import Identity
from app.schemas.posting import (
    KIND_VALUES,
    REQUIRED_TEXT_FIELDS,
    UPDATABLE_FIELDS,
    PostingRead,
    to_public_fields,
)
from app.services import authorization
from app.services.errors import IndexOutOfRange, InvalidKind, MissingFields, NotFound
from app.services.notifications import (
    POSTING_CREATED,
    POSTING_DELETED,
    POSTING_SELECTED,
    POSTING_UPDATED,
    Notifier,
)
from app.services.users import is_valid_index

logger = logging.getLogger(__name__)

POSTING_NOT_FOUND = "Posting not found."


def _validate_kind(kind: str) -> str:
    if kind not in KIND_VALUES:
        raise InvalidKind()
    return kind


def validate_changes(changes: dict[str, Any]) -> dict[str, Any]:
    """
    Check a partial update before anything is read or written.

    Only supplied keys are returned. Text fields may not be blanked; any kind outside KIND_VALUES,
    blank included, is InvalidKind; image may be set to None to clear it.
    """
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")
    cleaned: dict[str, Any] = {}
    blank = [
        field
        for field in REQUIRED_TEXT_FIELDS
        if field in changes and (changes[field] is None or not str(changes[field]).strip())
    ]
    if blank:
        raise MissingFields(blank)
    for field, value in changes.items():
        if field == "kind":
            value = _validate_kind(value)
        cleaned[field] = value
    return cleaned


def list_postings(store: Store, caller: Identity | None) -> list[PostingRead]:
    """Administrators see every posting; other callers see only their own."""
    authorization.can_list_postings(caller).enforce()
    owner = authorization.posting_owner_filter(caller)
    return [PostingRead.from_model(p) for p in store.list_postings(owner_email=owner)]


def get_posting_by_id(
    store: Store,
    caller: Identity | None,
    notifier: Notifier,
    posting_id: str,
) -> PostingRead | None:
    authorization.authenticated(caller).enforce()
    posting = store.get_posting(posting_id)
    if posting is None:
        return None
    authorization.can_view_posting(caller, posting.owner_email).enforce()
    result = PostingRead.from_model(posting)
    notifier.notify(POSTING_SELECTED, {"id": result.id}, [result.owner_email])
    return result


def create_posting(
    store: Store,
    caller: Identity | None,
    notifier: Notifier,
    title: str,
    date: str,
    description: str,
    kind: str,
    image: str | None = None,
    owner_email: str | None = None,
) -> PostingRead:
    """Create a posting owned by the caller. A requested owner_email is ignored."""
    fields = {"title": title, "date": date, "description": description}
    missing = [name for name, value in fields.items() if not value or not str(value).strip()]
    if missing:
        raise MissingFields(missing)
    _validate_kind(kind)
    authorization.can_create_posting(caller).enforce()

    owner = caller.email.lower()
    if owner_email and owner_email.strip().lower() != owner:
        logger.debug("Ignoring requested posting owner", extra={"caller_id": caller.id})

    posting = store.add_posting(
        title=title,
        owner_email=owner,
        date=date,
        description=description,
        kind=kind,
        image=image,
    )
    result = PostingRead.from_model(posting)
    logger.info("Posting created", extra={"posting_id": result.id, "kind": result.kind})
    notifier.notify(POSTING_CREATED, result.as_event(), [result.owner_email])
    return result


def _apply_update(
    store: Store,
    caller: Identity,
    notifier: Notifier,
    target: Any,
    changes: dict[str, Any],
) -> PostingRead:
    authorization.can_modify_posting(caller, target.owner_email).enforce()
    if not changes:
        return PostingRead.from_model(target)
    updated = store.update_posting(target.id, changes)
    if updated is None:
        raise NotFound(POSTING_NOT_FOUND)
    result = PostingRead.from_model(updated)
    logger.info(
        "Posting updated",
        extra={"posting_id": result.id, "fields": sorted(changes)},
    )
    notifier.notify(
        POSTING_UPDATED,
        to_public_fields({"id": result.id, **changes}),
        [target.owner_email, result.owner_email],
    )
    return result


def update_posting(
    store: Store,
    caller: Identity | None,
    notifier: Notifier,
    posting_id: str,
    changes: dict[str, Any],
) -> PostingRead:
    """Partial update by id; fields absent from changes keep their value."""
    cleaned = validate_changes(changes)
    authorization.authenticated(caller).enforce()
    target = store.get_posting(posting_id)
    if target is None:
        raise NotFound(POSTING_NOT_FOUND)
    return _apply_update(store, caller, notifier, target, cleaned)


def _snapshot_at(store: Store, caller: Identity, index: int) -> Any:
    """
    Resolve a position in the caller's visible listing to a posting.

    The listing and the following write are separate store calls, so a concurrent
    write in between can make the position point at a different posting.
    """
    snapshot = store.list_postings(owner_email=authorization.posting_owner_filter(caller))
    if not is_valid_index(index, len(snapshot)):
        raise IndexOutOfRange()
    return snapshot[index]


def update_posting_by_index(
    store: Store,
    caller: Identity | None,
    notifier: Notifier,
    index: int,
    changes: dict[str, Any],
) -> PostingRead:
    """Compatibility shim: partial update of the posting at a position of the caller's listing."""
    cleaned = validate_changes(changes)
    authorization.authenticated(caller).enforce()
    target = _snapshot_at(store, caller, index)
    return _apply_update(store, caller, notifier, target, cleaned)


def _apply_delete(store: Store, caller: Identity, notifier: Notifier, target: Any) -> bool:
    authorization.can_modify_posting(caller, target.owner_email).enforce()
    if not store.delete_posting(target.id):
        raise NotFound(POSTING_NOT_FOUND)
    posting_id = str(target.id)
    logger.info("Posting deleted", extra={"posting_id": posting_id, "caller_id": caller.id})
    notifier.notify(POSTING_DELETED, {"id": posting_id}, [target.owner_email])
    return True


def delete_posting(
    store: Store,
    caller: Identity | None,
    notifier: Notifier,
    posting_id: str,
) -> bool:
    authorization.authenticated(caller).enforce()
    target = store.get_posting(posting_id)
    if target is None:
        raise NotFound(POSTING_NOT_FOUND)
    return _apply_delete(store, caller, notifier, target)


def delete_posting_by_index(
    store: Store,
    caller: Identity | None,
    notifier: Notifier,
    index: int,
) -> bool:
    """Compatibility shim: delete the posting at a position of the caller's listing."""
    authorization.authenticated(caller).enforce()
    target = _snapshot_at(store, caller, index)
    return _apply_delete(store, caller, notifier, target)
