"""Pydantic schemas for volunteering postings."""

from typing import Any, Literal

from pydantic import BaseModel

PostingKind = Literal["REQUEST", "OFFER"]

KIND_VALUES: frozenset[str] = frozenset({"REQUEST", "OFFER"})

# Fields a caller may change through an update; owner_email is immutable.
UPDATABLE_FIELDS: frozenset[str] = frozenset({"title", "date", "description", "kind", "image"})
REQUIRED_TEXT_FIELDS: tuple[str, ...] = ("title", "date", "description")

# Posting field -> name used by API clients (GraphQL Voluntariado type and realtime events)
PUBLIC_FIELD_NAMES: dict[str, str] = {
    "id": "id",
    "title": "titulo",
    "owner_email": "usuario",
    "date": "fecha",
    "description": "descripcion",
    "kind": "tipo",
    "image": "imagen",
}


def to_public_fields(fields: dict[str, Any]) -> dict[str, Any]:
    """Rename posting fields to their client-facing names."""
    return {PUBLIC_FIELD_NAMES[name]: value for name, value in fields.items()}


class PostingRead(BaseModel):
    """Posting as returned to callers."""

    id: str
    title: str
    owner_email: str
    date: str
    description: str
    kind: PostingKind
    image: str | None = None

    @classmethod
    def from_model(cls, posting: object) -> "PostingRead":
        return cls(
            id=str(posting.id),
            title=posting.title,
            owner_email=posting.owner_email,
            date=posting.date,
            description=posting.description,
            kind=posting.kind,
            image=posting.image,
        )

    def as_event(self) -> dict[str, Any]:
        """Notification payload, keyed like the Voluntariado type."""
        return to_public_fields(self.model_dump())
