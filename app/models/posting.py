"""ORM model for volunteering postings (offers and requests)."""

from sqlalchemy import Column, DateTime, Integer, String, Text, func

from app.models.base import Base


class Posting(Base):
    """
    A volunteering offer or request published by a user.

    owner_email references users.email by value only; there is no foreign key, so postings
    survive the deletion of their owner.
    """

    __tablename__ = "postings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    owner_email = Column(String(320), nullable=False, index=True)
    date = Column(String(64), nullable=False)
    description = Column(Text, nullable=False)
    kind = Column(String(16), nullable=False)
    image = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
