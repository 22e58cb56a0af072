"""
Database schema and connection management.

Uses SQLAlchemy; SQLite by default. A plain filesystem path is treated as a
SQLite database file, anything containing "://" as a SQLAlchemy URL.
"""

import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, Union

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .constants import ACTIVE, STARTED

Base = declarative_base()

DatabaseTarget = Union[str, Path]


def utcnow() -> datetime:
    """Naive UTC timestamp; all stored datetimes are naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Question(Base):
    """Questionnaire item, one RIASEC category each."""

    __tablename__ = "questions"

    id = Column(Integer, primary_key=True)
    text = Column(Text, nullable=False)
    category = Column(String(1), nullable=False)  # R, I, A, S, E or C
    is_active = Column(Boolean, nullable=False, default=True)


class CareerProfile(Base):
    """Catalog career with a loosely typed RIASEC target profile."""

    __tablename__ = "career_profiles"

    id = Column(Integer, primary_key=True)
    career_name = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    profile = Column(JSON)  # {"R": 40, "I": 35, ...}; may be malformed
    job_zone = Column(Integer, nullable=False, default=1)
    tags = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)


class TestSession(Base):
    """One questionnaire attempt; authorizes a single submission."""

    __tablename__ = "test_sessions"
    __test__ = False  # not a pytest class

    id = Column(Integer, primary_key=True)
    session_token = Column(String(64), nullable=False, unique=True)
    status = Column(String, nullable=False, default=STARTED)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=False)


class TestResult(Base):
    """Immutable scoring and matching snapshot for a completed session."""

    __tablename__ = "test_results"
    __test__ = False

    id = Column(Integer, primary_key=True)
    session_token = Column(
        String(64), ForeignKey("test_sessions.session_token"), nullable=False, unique=True
    )
    responses = Column(JSON, nullable=False)
    scores = Column(JSON, nullable=False)
    career_code = Column(String(3), nullable=False)
    total_score = Column(Integer, nullable=False)
    tier = Column(String, nullable=False)
    matched_careers = Column(JSON, nullable=False)
    statistics = Column(JSON)
    job_preferences = Column(JSON)
    recommendation = Column(JSON)  # None when the narrative service failed
    completion_seconds = Column(Integer)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    feedback = Column(Text)
    rating = Column(Integer)


class AccessGrant(Base):
    """Usage-limited, time-bounded credential for viewing results."""

    __tablename__ = "access_grants"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    token = Column(String(16), nullable=False, unique=True)  # e.g. LINCO-A3F8
    email = Column(String, nullable=False)
    name = Column(String)
    institution = Column(String)
    type = Column(String, nullable=False)
    status = Column(String, nullable=False, default=ACTIVE)
    usage_count = Column(Integer, nullable=False, default=0)
    max_usage = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=False)
    first_used_at = Column(DateTime)
    last_used_at = Column(DateTime)


class UsageRecord(Base):
    """Ledger row: one per (grant, result session)."""

    __tablename__ = "usage_records"
    __table_args__ = (
        UniqueConstraint("grant_id", "session_token", name="uq_usage_grant_session"),
    )

    id = Column(Integer, primary_key=True)
    grant_id = Column(String(36), ForeignKey("access_grants.id"), nullable=False)
    session_token = Column(String(64), nullable=False)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    student_class = Column(String, nullable=False)
    contact_email = Column(String)
    unlocked_at = Column(DateTime, nullable=False)
    last_viewed_at = Column(DateTime, nullable=False)
    view_count = Column(Integer, nullable=False, default=1)


_engines: Dict[str, Engine] = {}
_engines_lock = threading.Lock()


def _database_url(target: DatabaseTarget) -> str:
    text = str(target)
    if "://" in text:
        return text
    return f"sqlite:///{Path(text)}"


def get_engine(target: DatabaseTarget) -> Engine:
    """
    Return a process-wide engine for a database path or URL.

    SQLite connections wait up to 30s for a write lock so concurrent
    writers serialize instead of failing with "database is locked".
    """
    url = _database_url(target)
    with _engines_lock:
        engine = _engines.get(url)
        if engine is None:
            connect_args = {"timeout": 30} if url.startswith("sqlite") else {}
            engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True)
            _engines[url] = engine
        return engine


def dispose_engines() -> None:
    """Close every cached engine (useful for testing)."""
    with _engines_lock:
        for engine in _engines.values():
            engine.dispose()
        _engines.clear()


def init_database(db_path: DatabaseTarget) -> None:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file, or a SQLAlchemy URL
    """
    if "://" not in str(db_path):
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(get_engine(db_path))


def get_session(db_path: DatabaseTarget) -> Session:
    """
    Get database session.

    Args:
        db_path: Path to SQLite database file, or a SQLAlchemy URL

    Returns:
        SQLAlchemy session
    """
    factory = sessionmaker(bind=get_engine(db_path), expire_on_commit=False)
    return factory()


@contextmanager
def session_scope(db_path: DatabaseTarget) -> Iterator[Session]:
    """
    Transaction boundary: commit on success, roll back on any exception.

    Every multi-write operation (session completion + result insert,
    ledger insert + grant increment) runs inside one of these.
    """
    session = get_session(db_path)
    try:
        yield session
        session.commit()
    except BaseException:
        session.rollback()
        raise
    finally:
        session.close()
