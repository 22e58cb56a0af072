"""
Assessment orchestration: submit, read, unlock, feedback and statistics.

Responsibilities:
- Check the session, score the responses, match careers and persist the
  result with the session completion in one transaction.
- Gate result reads behind an access grant through the usage ledger.

Non-Responsibilities:
- Scoring and matching rules (scoring.py, matching.py).
- Grant accounting (grants.py, ledger.py).

Invariant:
A session produces at most one result; a result row exists if and only if
its session is COMPLETED.
"""

from collections import Counter
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import ledger, notifications, recommendation
from .constants import COMPLETED, MAX_SCORE, MIN_SCORE, RIASEC_CATEGORIES, STARTED
from .database import (
    CareerProfile,
    DatabaseTarget,
    Question,
    TestResult,
    TestSession,
    session_scope,
    utcnow,
)
from .errors import ResultNotFound, SessionNotFound, SessionStateError, ValidationError
from .logger import get_logger
from .matching import match_careers
from .schema import validate_preferences
from .scoring import build_trait_lookup, score_responses
from .types import Career, JobPreferences, QuestionResponse, Viewer

logger = get_logger()

ResponseInput = Union[QuestionResponse, Mapping[str, Any]]


def _to_responses(responses: Sequence[ResponseInput]) -> List[QuestionResponse]:
    return [
        r if isinstance(r, QuestionResponse) else QuestionResponse.from_dict(r)
        for r in responses
    ]


def _to_preferences(prefs: Union[JobPreferences, Mapping[str, Any], None]) -> Optional[JobPreferences]:
    if prefs is None or isinstance(prefs, JobPreferences):
        return prefs
    return JobPreferences.from_dict(prefs)


def load_catalog(db: Session) -> List[Career]:
    """Active careers in id order, profiles left unparsed."""
    rows = db.query(CareerProfile).filter(CareerProfile.is_active.is_(True)).order_by(CareerProfile.id).all()
    return [
        Career(
            id=row.id,
            career_name=row.career_name,
            description=row.description or "",
            profile=row.profile,
            job_zone=row.job_zone,
            tags=list(row.tags or []),
        )
        for row in rows
    ]


def check_session(session: Optional[TestSession], now: datetime) -> TestSession:
    if session is None:
        raise SessionNotFound("Invalid session token")
    if session.status == COMPLETED:
        raise SessionStateError("Test already completed")
    if session.expires_at < now:
        raise SessionStateError("Session expired")
    return session


def result_payload(row: TestResult) -> Dict[str, Any]:
    return {
        "resultId": row.id,
        "sessionToken": row.session_token,
        "careerCode": row.career_code,
        "scores": row.scores,
        "totalScore": row.total_score,
        "tier": row.tier,
        "matches": row.matched_careers,
        "statistics": row.statistics,
        "streamRecommendation": row.recommendation,
        "submittedAt": row.created_at.isoformat(),
    }


def submit_assessment(
    db_path: DatabaseTarget,
    session_token: str,
    responses: Sequence[ResponseInput],
    job_preferences: Union[JobPreferences, Mapping[str, Any], None] = None,
    recommender: Optional[Callable[..., Any]] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Score and persist a completed questionnaire.

    Args:
        db_path: Database path or URL
        session_token: Token returned by selector.start_session
        responses: 60 {"questionId", "score"} entries (or QuestionResponse)
        job_preferences: Optional filters for career matching
        recommender: Replacement for recommendation.recommend_or_none
        now: Override for the current time

    Returns:
        Result payload including matches, statistics and the optional
        stream recommendation

    Raises:
        SessionNotFound: Unknown session token
        SessionStateError: Session already completed or expired
        ValidationError: Responses or preferences are invalid
    """
    now = now or utcnow()
    parsed = _to_responses(responses)
    prefs = _to_preferences(job_preferences)
    recommender = recommender or recommendation.recommend_or_none

    with session_scope(db_path) as db:
        session = check_session(
            db.query(TestSession).filter(TestSession.session_token == session_token).one_or_none(),
            now,
        )
        created_at = session.created_at

        pref_errors = validate_preferences(prefs)
        if pref_errors:
            logger.record_submission(accepted=False)
            raise ValidationError(pref_errors, "Invalid job preferences")

        active = db.query(Question).filter(Question.is_active.is_(True)).all()
        try:
            scoring = score_responses(parsed, build_trait_lookup(active))
        except ValidationError as e:
            logger.record_submission(accepted=False)
            logger.warning("Submission rejected", errors=len(e.errors), first_error=e.errors[0])
            raise

        catalog = load_catalog(db)

    report = match_careers(scoring.scores, catalog, prefs)
    stream = recommender(scoring.career_code, scoring.scores, scoring.tier, report.matches)

    matches = [m.to_dict() for m in report.matches]
    statistics = report.statistics.to_dict()
    stream_dict = stream.to_dict() if stream is not None else None

    try:
        with session_scope(db_path) as db:
            completed = (
                db.query(TestSession)
                .filter(TestSession.session_token == session_token, TestSession.status == STARTED)
                .update({TestSession.status: COMPLETED}, synchronize_session=False)
            )
            if not completed:
                raise SessionStateError("Test already completed")

            row = TestResult(
                session_token=session_token,
                responses=[r.to_dict() for r in parsed],
                scores=scoring.scores.to_dict(),
                career_code=scoring.career_code,
                total_score=scoring.total_score,
                tier=scoring.tier,
                matched_careers=matches,
                statistics=statistics,
                job_preferences=prefs.to_dict() if prefs else None,
                recommendation=stream_dict,
                completion_seconds=int((now - created_at).total_seconds()),
                created_at=now,
            )
            db.add(row)
            db.flush()
            payload = result_payload(row)
    except IntegrityError as e:
        raise SessionStateError("Test already completed") from e

    payload["topThree"] = scoring.top_three
    logger.record_submission(accepted=True)
    logger.info(
        "Assessment completed",
        result_id=payload["resultId"],
        career_code=scoring.career_code,
        tier=scoring.tier,
        matches=len(matches),
        recommendation=stream is not None,
    )
    return payload


def get_result(db_path: DatabaseTarget, session_token: str) -> Dict[str, Any]:
    """
    Raises:
        ResultNotFound: If the session has no result
    """
    with session_scope(db_path) as db:
        row = db.query(TestResult).filter(TestResult.session_token == session_token).one_or_none()
        if row is None:
            raise ResultNotFound("Result not found")
        return result_payload(row)


def get_result_with_grant(
    db_path: DatabaseTarget,
    grant_token: str,
    session_token: str,
    viewer: Viewer,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Read a result through an access grant.

    The result is looked up first so a missing result never costs a use.
    The first unlock with a contact email triggers a best-effort email.

    Raises:
        ResultNotFound: If the session has no result
        GrantInvalid: If the grant cannot be consumed and no prior unlock exists
    """
    payload = get_result(db_path, session_token)
    outcome = ledger.unlock(db_path, grant_token, session_token, viewer, now)

    if not outcome.is_review and viewer.contact_email:
        notifications.dispatch(
            notifications.send_result_unlocked,
            viewer.contact_email,
            viewer.full_name,
            payload["careerCode"],
            payload["tier"],
            session_token,
        )

    payload["access"] = outcome.to_dict()
    return payload


def submit_feedback(
    db_path: DatabaseTarget,
    session_token: str,
    feedback: Optional[str],
    rating: Optional[int] = None,
) -> Dict[str, Any]:
    """Attach free-text feedback and an optional 1-5 rating to a result."""
    if rating is not None and (
        isinstance(rating, bool) or not isinstance(rating, int) or not MIN_SCORE <= rating <= MAX_SCORE
    ):
        raise ValidationError([f"rating must be an integer between {MIN_SCORE} and {MAX_SCORE}"], "Invalid feedback")

    with session_scope(db_path) as db:
        row = db.query(TestResult).filter(TestResult.session_token == session_token).one_or_none()
        if row is None:
            raise ResultNotFound("Result not found")
        row.feedback = feedback
        row.rating = rating
        result_id = row.id

    logger.info("Feedback received", result_id=result_id, rating=rating)
    return {"resultId": result_id, "feedback": feedback, "rating": rating}


def get_statistics(db_path: DatabaseTarget) -> Dict[str, Any]:
    """Totals, average trait scores (1 dp), the 10 commonest career codes and the tier distribution."""
    with session_scope(db_path) as db:
        rows = db.query(TestResult.scores, TestResult.career_code, TestResult.tier).all()

    total = len(rows)
    averages = {}
    for cat in RIASEC_CATEGORIES:
        values = [scores.get(cat, 0) for scores, _, _ in rows if scores]
        averages[cat] = round(sum(values) / len(values), 1) if values else 0

    codes = Counter(code for _, code, _ in rows)
    tiers = Counter(tier for _, _, tier in rows if tier)

    return {
        "totalTests": total,
        "averageScores": averages,
        "topCareerCodes": [code for code, _ in codes.most_common(10)],
        "tierDistribution": dict(tiers.most_common()),
    }
