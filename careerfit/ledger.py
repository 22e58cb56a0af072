"""
Exactly-once usage ledger for result unlocks.

Responsibilities:
- Charge a grant once per (grant, result session) pair, on the first unlock.
- Record who unlocked the result and count every later review.
- Report a grant's usage, overall and per class.

Non-Responsibilities:
- Does not check that the result exists (assessments does, before calling).
- Does not send notifications.

Invariant:
usage_count of a grant equals the number of its usage records and never
exceeds max_usage. The unique (grant_id, session_token) constraint decides
which of two concurrent first unlocks wins; the loser becomes a review.
"""

from collections import Counter
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import grants
from .constants import ACTIVE, REASON_LIMIT_EXCEEDED, REASON_NOT_FOUND, USED
from .database import AccessGrant, DatabaseTarget, UsageRecord, session_scope, utcnow
from .errors import ConcurrencyConflict, GrantInvalid
from .logger import get_logger
from .types import UnlockOutcome, Viewer

logger = get_logger()


def find_record(db: Session, grant_id: str, session_token: str) -> Optional[UsageRecord]:
    return (
        db.query(UsageRecord)
        .filter(UsageRecord.grant_id == grant_id, UsageRecord.session_token == session_token)
        .one_or_none()
    )


def can_review(grant: AccessGrant, now: datetime) -> bool:
    """A previously unlocked result stays viewable while the grant is ACTIVE or USED and unexpired."""
    return grant.status in (ACTIVE, USED) and now <= grant.expires_at


def _outcome(grant: AccessGrant, record: UsageRecord, is_review: bool) -> UnlockOutcome:
    return UnlockOutcome(
        is_review=is_review,
        unlocked_at=record.unlocked_at,
        last_viewed_at=record.last_viewed_at,
        view_count=record.view_count,
        remaining_usage=grants.remaining_usage(grant),
        grant_type=grant.type,
        institution=grant.institution,
        expires_at=grant.expires_at,
    )


def _review(db: Session, grant: AccessGrant, record: UsageRecord, now: datetime) -> UnlockOutcome:
    """Bump the view counter. Usage is not charged."""
    (
        db.query(UsageRecord)
        .filter(UsageRecord.id == record.id)
        .update(
            {
                UsageRecord.view_count: UsageRecord.view_count + 1,
                UsageRecord.last_viewed_at: now,
            },
            synchronize_session=False,
        )
    )
    db.refresh(record)
    return _outcome(grant, record, is_review=True)


def _insert_record(db: Session, grant: AccessGrant, session_token: str, viewer: Viewer, now: datetime) -> UsageRecord:
    record = UsageRecord(
        grant_id=grant.id,
        session_token=session_token,
        first_name=viewer.first_name,
        last_name=viewer.last_name,
        student_class=viewer.student_class,
        contact_email=viewer.contact_email,
        unlocked_at=now,
        last_viewed_at=now,
        view_count=1,
    )
    grant_id = grant.id
    db.add(record)
    try:
        db.flush()
    except IntegrityError as e:
        # The failed flush leaves the session unusable until rolled back.
        db.rollback()
        raise ConcurrencyConflict(
            f"Usage record for grant {grant_id} and this session already exists"
        ) from e
    return record


def _charge(db: Session, grant: AccessGrant, now: datetime) -> None:
    """
    Conditionally increment usage, moving the grant to USED at the limit.

    Raises:
        GrantInvalid: If the grant stopped being consumable since validation
    """
    updated = (
        db.query(AccessGrant)
        .filter(
            AccessGrant.id == grant.id,
            AccessGrant.status == ACTIVE,
            AccessGrant.usage_count < AccessGrant.max_usage,
            AccessGrant.expires_at >= now,
        )
        .update(
            {
                AccessGrant.usage_count: AccessGrant.usage_count + 1,
                # SET expressions see the pre-update row
                AccessGrant.status: case(
                    (AccessGrant.usage_count + 1 >= AccessGrant.max_usage, USED),
                    else_=ACTIVE,
                ),
                AccessGrant.first_used_at: func.coalesce(AccessGrant.first_used_at, now),
                AccessGrant.last_used_at: now,
            },
            synchronize_session=False,
        )
    )
    db.refresh(grant)
    if not updated:
        raise GrantInvalid(grants.rejection_reason(grant, now) or REASON_LIMIT_EXCEEDED)


def unlock(
    db_path: DatabaseTarget,
    grant_token: str,
    session_token: str,
    viewer: Viewer,
    now: Optional[datetime] = None,
) -> UnlockOutcome:
    """
    Unlock a result with an access grant.

    The first unlock of a (grant, session) pair inserts a usage record and
    consumes one use, in one transaction. Any later call for the same pair
    is a review: view_count and last_viewed_at change, usage does not.

    Args:
        db_path: Database path or URL
        grant_token: Access token string, e.g. "LINCO-A3F8"
        session_token: Session whose result is being unlocked
        viewer: Student identity stored on the usage record
        now: Override for the current time

    Returns:
        UnlockOutcome

    Raises:
        GrantInvalid: If the grant cannot be consumed and no prior unlock exists
    """
    now = now or utcnow()

    with session_scope(db_path) as db:
        grant = grants.find_grant(db, grant_token)
        if grant is not None:
            grants.apply_lazy_expiry(db, grant, now)
            record = find_record(db, grant.id, session_token)
            if record is not None and can_review(grant, now):
                outcome = _review(db, grant, record, now)
                logger.record_unlock(is_review=True)
                logger.info("Result reviewed", grant_id=grant.id, view_count=outcome.view_count)
                return outcome

        verdict = grants.validate_grant(db, grant_token, now)

    if not verdict.valid:
        raise GrantInvalid(verdict.reason)

    try:
        with session_scope(db_path) as db:
            grant = grants.find_grant(db, grant_token)
            if grant is None:
                raise GrantInvalid(REASON_NOT_FOUND)
            record = _insert_record(db, grant, session_token, viewer, now)
            _charge(db, grant, now)
            outcome = _outcome(grant, record, is_review=False)
    except ConcurrencyConflict:
        logger.record_unlock_conflict()
        logger.warning("Concurrent first unlock detected, treating as review", grant_id=verdict.grant.id)
        return _review_after_conflict(db_path, grant_token, session_token, now)

    logger.record_unlock(is_review=False)
    logger.info(
        "Result unlocked",
        grant_id=grant.id,
        type=grant.type,
        status=grant.status,
        remaining_usage=outcome.remaining_usage,
        student_class=viewer.student_class,
    )
    return outcome


def _review_after_conflict(
    db_path: DatabaseTarget,
    grant_token: str,
    session_token: str,
    now: datetime,
) -> UnlockOutcome:
    with session_scope(db_path) as db:
        grant = grants.find_grant(db, grant_token)
        record = find_record(db, grant.id, session_token)
        outcome = _review(db, grant, record, now)
    logger.record_unlock(is_review=True)
    return outcome


def usage_by_class(db_path: DatabaseTarget, grant_token: str) -> Dict[str, int]:
    """Number of unlocked results per student class for one grant."""
    with session_scope(db_path) as db:
        grant = grants.find_grant(db, grant_token)
        if grant is None:
            raise GrantInvalid(REASON_NOT_FOUND)
        classes = db.query(UsageRecord.student_class).filter(UsageRecord.grant_id == grant.id).all()
        return dict(Counter(row[0] for row in classes))


def token_usage_report(
    db_path: DatabaseTarget,
    grant_token: str,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Usage summary for a grant: current status plus one entry per unlocked result.

    Raises:
        GrantInvalid: If the token does not exist
    """
    with session_scope(db_path) as db:
        grant = grants.find_grant(db, grant_token)
        if grant is None:
            raise GrantInvalid(REASON_NOT_FOUND)
        grants.apply_lazy_expiry(db, grant, now or utcnow())

        records = (
            db.query(UsageRecord)
            .filter(UsageRecord.grant_id == grant.id)
            .order_by(UsageRecord.unlocked_at, UsageRecord.id)
            .all()
        )

        report = grants.grant_status_dict(grant)
        report["institution"] = grant.institution
        report["usage"] = [
            {
                "sessionToken": r.session_token,
                "studentName": f"{r.first_name} {r.last_name}",
                "studentClass": r.student_class,
                "unlockedAt": r.unlocked_at.isoformat(),
                "lastViewedAt": r.last_viewed_at.isoformat(),
                "viewCount": r.view_count,
            }
            for r in records
        ]
        report["byClass"] = dict(Counter(r.student_class for r in records))
        report["totalViews"] = sum(r.view_count for r in records)
        return report
