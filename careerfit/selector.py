"""
Question selection for new assessment sessions.

Draws a uniform random 60-question subset of the active catalog and persists
a STARTED session that authorizes exactly one submission.
"""

import random
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, TypeVar

from .constants import SESSION_TOKEN_BYTES, SESSION_TTL_HOURS, STARTED, TOTAL_QUESTIONS
from .database import DatabaseTarget, Question, TestSession, session_scope, utcnow
from .errors import InsufficientCatalog
from .logger import get_logger

logger = get_logger()

T = TypeVar("T")

_system_random = random.SystemRandom()


def shuffled(items: Sequence[T], rng: Optional[random.Random] = None) -> List[T]:
    """Uniform random permutation (random.shuffle is Fisher-Yates) of a copy."""
    out = list(items)
    (rng or _system_random).shuffle(out)
    return out


def draw_questions(
    questions: Sequence[T],
    count: int = TOTAL_QUESTIONS,
    rng: Optional[random.Random] = None,
) -> List[T]:
    """
    Shuffle the full active set, then truncate.

    Raises:
        InsufficientCatalog: If fewer than `count` questions are available
    """
    if len(questions) < count:
        raise InsufficientCatalog(active=len(questions), required=count)
    return shuffled(questions, rng)[:count]


def generate_session_token() -> str:
    """256 bits from the OS CSPRNG, hex encoded."""
    return secrets.token_hex(SESSION_TOKEN_BYTES)


def start_session(
    db_path: DatabaseTarget,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Start an assessment session.

    Args:
        db_path: Database path or URL
        rng: Optional random source for the shuffle (tests only)
        now: Override for the creation time

    Returns:
        {"sessionToken", "expiresAt", "questions": [{"id", "text", "category"}]}

    Raises:
        InsufficientCatalog: If the active catalog has fewer than 60 questions
    """
    created_at = now or utcnow()

    with session_scope(db_path) as db:
        active = db.query(Question).filter(Question.is_active.is_(True)).order_by(Question.id).all()
        if len(active) < TOTAL_QUESTIONS:
            logger.error(
                "Not enough active questions to start a session",
                active=len(active),
                required=TOTAL_QUESTIONS,
            )
        questions = draw_questions(active, TOTAL_QUESTIONS, rng)

        session = TestSession(
            session_token=generate_session_token(),
            status=STARTED,
            created_at=created_at,
            expires_at=created_at + timedelta(hours=SESSION_TTL_HOURS),
        )
        db.add(session)
        payload = {
            "sessionToken": session.session_token,
            "expiresAt": session.expires_at.isoformat(),
            "questions": [{"id": q.id, "text": q.text, "category": q.category} for q in questions],
        }

    logger.record_session_started()
    logger.info("Session started", questions=len(payload["questions"]), catalog=len(active))
    return payload
