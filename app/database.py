from __future__ import annotations

import datetime
from typing import Optional

from sqlalchemy import (
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    select,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from settings import DATA_DIR


CACHE_DATABASE_URL = f"sqlite:///{(DATA_DIR / 'roster_cache.db').as_posix()}"


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Base(DeclarativeBase):
    """Metadata for the local cache living in roster_cache.db."""

    pass


class CacheEntry(Base):
    __tablename__ = "cache_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(200), nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False, default="null")
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
    )

    __table_args__ = (UniqueConstraint("key", name="uq_cache_entries_key"),)


cache_engine = create_engine(
    CACHE_DATABASE_URL,
    echo=False,
    future=True,
)
CacheSessionLocal = sessionmaker(bind=cache_engine, expire_on_commit=False, future=True)


def init_database(engine=None) -> None:
    Base.metadata.create_all(engine or cache_engine)


def get_cache_value(session, key: str) -> Optional[str]:
    stmt = select(CacheEntry.value).where(CacheEntry.key == key)
    return session.scalars(stmt).first()


def put_cache_value(session, key: str, value: str) -> CacheEntry:
    existing: Optional[CacheEntry] = session.scalars(select(CacheEntry).where(CacheEntry.key == key)).first()
    if existing:
        existing.value = value
        existing.updated_at = _utcnow()
        session.commit()
        session.refresh(existing)
        return existing
    entry = CacheEntry(key=key, value=value, updated_at=_utcnow())
    session.add(entry)
    session.commit()
    session.refresh(entry)
    return entry
