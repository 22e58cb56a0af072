"""
Housekeeping for abandoned sessions and lapsed grants.

Expired STARTED sessions can never be submitted, so they are deleted.
ACTIVE grants past their expiry are marked EXPIRED eagerly (validation would
do the same lazily); USED, EXPIRED and REVOKED grants are left alone.
"""

from datetime import datetime
from typing import Dict, Optional

from .constants import ACTIVE, EXPIRED, STARTED
from .database import AccessGrant, DatabaseTarget, TestSession, session_scope, utcnow
from .logger import get_logger

logger = get_logger()


def cleanup_expired_sessions(db_path: DatabaseTarget, now: Optional[datetime] = None) -> int:
    """
    Delete sessions that expired without a submission.

    Returns:
        Number of sessions removed
    """
    now = now or utcnow()
    try:
        with session_scope(db_path) as db:
            removed = (
                db.query(TestSession)
                .filter(TestSession.status == STARTED, TestSession.expires_at < now)
                .delete(synchronize_session=False)
            )
    except Exception as e:
        logger.record_error(type(e).__name__)
        logger.error(f"Session cleanup failed: {e}")
        raise

    logger.info(f"Cleaned up {removed} expired sessions", removed=removed)
    return removed


def expire_stale_grants(db_path: DatabaseTarget, now: Optional[datetime] = None) -> int:
    """
    Mark ACTIVE grants past their expiry as EXPIRED.

    Returns:
        Number of grants transitioned
    """
    now = now or utcnow()
    with session_scope(db_path) as db:
        expired = (
            db.query(AccessGrant)
            .filter(AccessGrant.status == ACTIVE, AccessGrant.expires_at < now)
            .update({AccessGrant.status: EXPIRED}, synchronize_session=False)
        )

    logger.info(f"Expired {expired} access tokens", expired=expired)
    return expired


def run_cleanup(db_path: DatabaseTarget, now: Optional[datetime] = None) -> Dict[str, int]:
    """Both housekeeping passes, returning their counts."""
    now = now or utcnow()
    return {
        "sessions_removed": cleanup_expired_sessions(db_path, now),
        "grants_expired": expire_stale_grants(db_path, now),
    }
