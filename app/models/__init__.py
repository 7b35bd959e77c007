"""SQLAlchemy ORM models."""

from app.models.base import Base
from app.models.posting import Posting
from app.models.user import User

__all__ = ["Base", "Posting", "User"]
