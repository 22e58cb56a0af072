"""
Access grant ("access token") lifecycle.

States: ACTIVE -> USED | EXPIRED | REVOKED. USED and EXPIRED only ever move
on to REVOKED; REVOKED is final. Validation never consumes usage; the only
consuming transition lives in ledger.unlock.
"""

import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .constants import (
    ACTIVE,
    ENTERPRISE,
    ENTERPRISE_TTL_DAYS,
    EXPIRED,
    GRANT_TYPES,
    INDIVIDUAL,
    INDIVIDUAL_MAX_USAGE,
    INDIVIDUAL_TTL_DAYS,
    REASON_EXPIRED,
    REASON_LIMIT_EXCEEDED,
    REASON_NOT_FOUND,
    REVOKED,
    TOKEN_ISSUE_ATTEMPTS,
    TOKEN_PREFIX_LENGTH,
)
from .database import AccessGrant, DatabaseTarget, session_scope, utcnow
from .errors import GrantInvalid, ValidationError
from .logger import get_logger

logger = get_logger()


@dataclass
class GrantValidation:
    valid: bool
    grant: Optional[AccessGrant] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if not self.valid:
            return {"valid": False, "reason": self.reason}
        return {
            "valid": True,
            "type": self.grant.type,
            "remainingUsage": remaining_usage(self.grant),
            "expiresAt": self.grant.expires_at.isoformat(),
        }


def _mask(token: str) -> str:
    return f"{token[:6]}..." if token else ""


def remaining_usage(grant: AccessGrant) -> int:
    return max(0, grant.max_usage - grant.usage_count)


def find_grant(db: Session, token: str) -> Optional[AccessGrant]:
    return db.query(AccessGrant).filter(AccessGrant.token == token).one_or_none()


def apply_lazy_expiry(db: Session, grant: AccessGrant, now: datetime) -> bool:
    """
    Move an ACTIVE grant past its expiry to EXPIRED.

    The UPDATE is conditional on the row still being ACTIVE so a concurrent
    revocation is never overwritten. Returns True if this call expired it.
    """
    if grant.status != ACTIVE or now <= grant.expires_at:
        return False

    updated = (
        db.query(AccessGrant)
        .filter(AccessGrant.id == grant.id, AccessGrant.status == ACTIVE)
        .update({AccessGrant.status: EXPIRED}, synchronize_session=False)
    )
    db.refresh(grant)
    if updated:
        logger.info("Access token expired", token=_mask(grant.token), expires_at=grant.expires_at)
    return bool(updated)


def rejection_reason(grant: Optional[AccessGrant], now: datetime) -> Optional[str]:
    """Why `grant` cannot be consumed right now, or None. Does not mutate."""
    # Revoked outranks expiry, and a spent limit is reported before a USED status.
    if grant is None:
        return REASON_NOT_FOUND
    if grant.status == REVOKED:
        return f"{REVOKED.lower()} is not active"
    if grant.status == EXPIRED or now > grant.expires_at:
        return REASON_EXPIRED
    if grant.usage_count >= grant.max_usage:
        return REASON_LIMIT_EXCEEDED
    if grant.status != ACTIVE:
        return f"{grant.status.lower()} is not active"
    return None


def validate_grant(db: Session, token: str, now: Optional[datetime] = None) -> GrantValidation:
    """
    Check whether a grant can still be consumed.

    The only side effect is the lazy ACTIVE -> EXPIRED transition; the
    caller's session must be committed for it to persist.
    """
    now = now or utcnow()
    grant = find_grant(db, token)
    if grant is not None:
        apply_lazy_expiry(db, grant, now)

    reason = rejection_reason(grant, now)
    if reason is not None:
        logger.record_grant_rejected(reason)
        logger.info("Access token rejected", token=_mask(token), reason=reason)
        return GrantValidation(valid=False, grant=grant, reason=reason)
    return GrantValidation(valid=True, grant=grant)


def validate_token(db_path: DatabaseTarget, token: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Standalone validation, committing any lazy expiry."""
    with session_scope(db_path) as db:
        return validate_grant(db, token, now).to_dict()


def create_token_string(institution: Optional[str]) -> str:
    """
    Format: five alphanumerics from the institution name (padded with X)
    plus four random hex digits, e.g. "Lincoln High" -> "LINCO-A3F8".
    """
    code = re.sub(r"[^a-zA-Z0-9]", "", institution or "").upper()[:TOKEN_PREFIX_LENGTH]
    code = code.ljust(TOKEN_PREFIX_LENGTH, "X")
    return f"{code}-{secrets.token_hex(2).upper()}"


def grant_terms(grant_type: str, max_usage: Optional[int], now: datetime):
    """Return (expires_at, max_usage) for a new grant of `grant_type`."""
    if grant_type == INDIVIDUAL:
        if max_usage:
            logger.warning("maxUsage provided for INDIVIDUAL token will be ignored", max_usage=max_usage)
        return now + timedelta(days=INDIVIDUAL_TTL_DAYS), INDIVIDUAL_MAX_USAGE
    return now + timedelta(days=ENTERPRISE_TTL_DAYS), max_usage


def issue_grant(
    db_path: DatabaseTarget,
    email: str,
    grant_type: str,
    name: Optional[str] = None,
    institution: Optional[str] = None,
    max_usage: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Create a new ACTIVE grant.

    INDIVIDUAL grants get one use and 30 days; ENTERPRISE grants require
    max_usage >= 1 and last 365 days. Token string collisions are retried.

    Raises:
        ValidationError: On a bad type, email or max_usage
    """
    errors = []
    if grant_type not in GRANT_TYPES:
        errors.append(f"type must be one of {', '.join(GRANT_TYPES)}")
    if not isinstance(email, str) or "@" not in email:
        errors.append("email must be a valid email address")
    if grant_type == ENTERPRISE and (
        isinstance(max_usage, bool) or not isinstance(max_usage, int) or max_usage < 1
    ):
        errors.append("maxUsage is required for ENTERPRISE tokens and must be at least 1")
    if errors:
        raise ValidationError(errors, "Invalid token request")

    now = now or utcnow()
    expires_at, usage_limit = grant_terms(grant_type, max_usage, now)

    for attempt in range(1, TOKEN_ISSUE_ATTEMPTS + 1):
        token = create_token_string(institution)
        try:
            with session_scope(db_path) as db:
                grant = AccessGrant(
                    token=token,
                    email=email,
                    name=name,
                    institution=institution,
                    type=grant_type,
                    status=ACTIVE,
                    usage_count=0,
                    max_usage=usage_limit,
                    created_at=now,
                    expires_at=expires_at,
                )
                db.add(grant)
                db.flush()
                grant_id = grant.id
        except IntegrityError:
            logger.warning("Token string collision, regenerating", attempt=attempt)
            continue

        logger.info(
            "Access token issued",
            token_id=grant_id,
            type=grant_type,
            max_usage=usage_limit,
            institution=institution,
        )
        return {
            "tokenId": grant_id,
            "token": token,
            "type": grant_type,
            "email": email,
            "name": name,
            "institution": institution,
            "expiresAt": expires_at.isoformat(),
            "maxUsage": usage_limit,
        }

    raise RuntimeError(f"Could not generate a unique access token after {TOKEN_ISSUE_ATTEMPTS} attempts")


def grant_status_dict(grant: AccessGrant) -> Dict[str, Any]:
    return {
        "id": grant.id,
        "token": grant.token,
        "type": grant.type,
        "status": grant.status,
        "usageCount": grant.usage_count,
        "maxUsage": grant.max_usage,
        "remainingUsage": remaining_usage(grant),
        "createdAt": grant.created_at.isoformat(),
        "expiresAt": grant.expires_at.isoformat(),
        "firstUsedAt": grant.first_used_at.isoformat() if grant.first_used_at else None,
        "lastUsedAt": grant.last_used_at.isoformat() if grant.last_used_at else None,
    }


def get_grant_status(db_path: DatabaseTarget, token: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Detailed grant state, after applying lazy expiry.

    Raises:
        GrantInvalid: If the token does not exist
    """
    with session_scope(db_path) as db:
        grant = find_grant(db, token)
        if grant is None:
            raise GrantInvalid(REASON_NOT_FOUND)
        apply_lazy_expiry(db, grant, now or utcnow())
        return grant_status_dict(grant)


def revoke_grant(db_path: DatabaseTarget, token: str) -> Dict[str, Any]:
    """
    Administratively revoke a grant from any state.

    Raises:
        GrantInvalid: If the token does not exist
    """
    with session_scope(db_path) as db:
        grant = find_grant(db, token)
        if grant is None:
            raise GrantInvalid(REASON_NOT_FOUND)
        previous = grant.status
        grant.status = REVOKED
        db.flush()
        status = grant_status_dict(grant)

    logger.info("Access token revoked", token=_mask(token), previous_status=previous)
    return status
