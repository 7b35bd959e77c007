"""Entity store: SQLAlchemy engine/session lifecycle and user/posting persistence."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine, delete, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.models import Base, Posting, User

logger = logging.getLogger(__name__)


def normalize_url(url: str) -> str:
    """SQLAlchemy only knows the postgresql dialect name; accept the short postgres scheme too."""
    if url.startswith("postgres://") or url.startswith("postgres+"):
        return "postgresql" + url[len("postgres"):]
    return url


def _engine_for(url: str, echo: bool) -> Engine:
    """Build an engine; in-memory SQLite gets a single shared connection usable from any thread."""
    url = normalize_url(url)
    if url.startswith("sqlite"):
        kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=echo, **kwargs)
    return create_engine(url, pool_pre_ping=True, echo=echo)


def _parse_id(raw: str | int) -> int | None:
    """Store ids are integers; anything else cannot match a row."""
    if isinstance(raw, bool):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


class Store:
    """
    Persistence for User and Posting entities.

    Each method runs in its own short-lived session, so a single insert/update/delete
    is atomic but a sequence of calls is not. Listings are ordered by id so positional
    addressing sees a stable order between two calls when nothing else writes.
    """

    def __init__(self, url: str, echo: bool = False) -> None:
        self.url = url
        self.echo = echo
        self._engine: Engine | None = None
        self._sessionmaker: sessionmaker[Session] | None = None

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    def open(self) -> "Store":
        if self._engine is None:
            self._engine = _engine_for(self.url, self.echo)
            self._sessionmaker = sessionmaker(
                bind=self._engine,
                autoflush=False,
                expire_on_commit=False,
            )
            logger.info("Store opened", extra={"dialect": self._engine.dialect.name})
        return self

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            logger.info("Store closed")
        self._engine = None
        self._sessionmaker = None

    def create_schema(self) -> None:
        """Create missing tables (SQLite/dev; production schema is managed by Alembic)."""
        Base.metadata.create_all(self._require_engine())

    def ping(self) -> bool:
        """Run a trivial query to verify the database is reachable."""
        try:
            with self._session() as db:
                db.execute(text("SELECT 1"))
            return True
        except Exception:
            return False

    def _require_engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Store is not open")
        return self._engine

    @contextmanager
    def _session(self) -> Iterator[Session]:
        self._require_engine()
        assert self._sessionmaker is not None
        db = self._sessionmaker()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # Users

    def list_users(self) -> list[User]:
        with self._session() as db:
            return list(db.scalars(select(User).order_by(User.id)))

    def get_user_by_email(self, email: str) -> User | None:
        with self._session() as db:
            return db.scalars(select(User).where(User.email == email)).first()

    def add_user(self, name: str, email: str, password_hash: str, role: str) -> User:
        """Insert a user; raises sqlalchemy.exc.IntegrityError when the email is taken."""
        user = User(name=name, email=email, password_hash=password_hash, role=role)
        with self._session() as db:
            db.add(user)
            db.commit()
            db.refresh(user)
        return user

    def delete_user_by_email(self, email: str) -> bool:
        with self._session() as db:
            result = db.execute(delete(User).where(User.email == email))
            db.commit()
            return result.rowcount > 0

    def delete_user_by_id(self, user_id: str | int) -> bool:
        pk = _parse_id(user_id)
        if pk is None:
            return False
        with self._session() as db:
            result = db.execute(delete(User).where(User.id == pk))
            db.commit()
            return result.rowcount > 0

    # Postings

    def list_postings(self, owner_email: str | None = None) -> list[Posting]:
        stmt = select(Posting).order_by(Posting.id)
        if owner_email is not None:
            stmt = stmt.where(Posting.owner_email == owner_email)
        with self._session() as db:
            return list(db.scalars(stmt))

    def get_posting(self, posting_id: str | int) -> Posting | None:
        pk = _parse_id(posting_id)
        if pk is None:
            return None
        with self._session() as db:
            return db.get(Posting, pk)

    def add_posting(
        self,
        title: str,
        owner_email: str,
        date: str,
        description: str,
        kind: str,
        image: str | None = None,
    ) -> Posting:
        posting = Posting(
            title=title,
            owner_email=owner_email,
            date=date,
            description=description,
            kind=kind,
            image=image,
        )
        with self._session() as db:
            db.add(posting)
            db.commit()
            db.refresh(posting)
        return posting

    def update_posting(self, posting_id: str | int, changes: dict[str, Any]) -> Posting | None:
        """Apply changes to one posting in a single transaction; None when it no longer exists."""
        pk = _parse_id(posting_id)
        if pk is None:
            return None
        with self._session() as db:
            posting = db.get(Posting, pk)
            if posting is None:
                return None
            for field, value in changes.items():
                setattr(posting, field, value)
            db.commit()
            db.refresh(posting)
            return posting

    def delete_posting(self, posting_id: str | int) -> bool:
        pk = _parse_id(posting_id)
        if pk is None:
            return False
        with self._session() as db:
            result = db.execute(delete(Posting).where(Posting.id == pk))
            db.commit()
            return result.rowcount > 0