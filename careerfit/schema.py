from typing import Any, Iterable, List, Optional, Sequence

from .constants import MAX_JOB_ZONE, MAX_SCORE, MIN_JOB_ZONE, MIN_SCORE, TOTAL_QUESTIONS
from .types import JobPreferences, QuestionResponse


def _is_int(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def _unique_in_order(values: Iterable[Any]) -> List[Any]:
    seen = set()
    out = []
    for v in values:
        if v not in seen:
            seen.add(v)
            out.append(v)
    return out


def validate_responses(
    responses: Sequence[QuestionResponse],
    active_question_ids: Optional[Iterable[int]] = None,
) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.

    Every violation is reported, not just the first: wrong response count,
    malformed entries, out-of-range scores (one message per response),
    duplicated question ids and, when `active_question_ids` is given, ids
    outside the active catalog (one message naming all of them).
    """
    errors: List[str] = []

    if len(responses) != TOTAL_QUESTIONS:
        errors.append(f"Expected {TOTAL_QUESTIONS} responses, got {len(responses)}")

    seen_ids = set()
    duplicates = []
    well_formed_ids = []

    for idx, response in enumerate(responses):
        qid = response.question_id
        score = response.score

        if qid is None:
            errors.append(f"Response {idx}: missing questionId")
        elif not _is_int(qid):
            errors.append(f"Response {idx}: questionId must be an integer, got {qid!r}")
        else:
            if qid in seen_ids:
                duplicates.append(qid)
            seen_ids.add(qid)
            well_formed_ids.append(qid)

        if score is None:
            errors.append(f"Response {idx}: missing score")
        elif not _is_int(score):
            errors.append(f"Response {idx}: score must be an integer, got {score!r}")
        elif score < MIN_SCORE or score > MAX_SCORE:
            errors.append(
                f"Response {idx}: invalid score {score} for question {qid} "
                f"(must be {MIN_SCORE}-{MAX_SCORE})"
            )

    if duplicates:
        dup_list = ", ".join(str(d) for d in _unique_in_order(duplicates))
        errors.append(
            f"Duplicate question IDs detected: {dup_list}. "
            f"Each question must be answered exactly once."
        )

    if active_question_ids is not None:
        active = set(active_question_ids)
        unknown = [qid for qid in _unique_in_order(well_formed_ids) if qid not in active]
        if unknown:
            errors.append(
                "Invalid or inactive questions: " + ", ".join(str(q) for q in unknown)
            )

    return errors


def validate_preferences(preferences: Optional[JobPreferences]) -> List[str]:
    """Returns a list of problems with job preferences. Empty list means valid."""
    errors: List[str] = []
    if preferences is None:
        return errors

    def check_zone(label: str, value: Any) -> None:
        if not _is_int(value) or not MIN_JOB_ZONE <= value <= MAX_JOB_ZONE:
            errors.append(f"{label} must be an integer between {MIN_JOB_ZONE} and {MAX_JOB_ZONE}")

    for zone in preferences.preferred_job_zones:
        check_zone(f"Preferred job zone {zone!r}", zone)
    if preferences.min_job_zone is not None:
        check_zone("minJobZone", preferences.min_job_zone)
    if preferences.max_job_zone is not None:
        check_zone("maxJobZone", preferences.max_job_zone)

    if (
        _is_int(preferences.min_job_zone)
        and _is_int(preferences.max_job_zone)
        and preferences.min_job_zone > preferences.max_job_zone
    ):
        errors.append("minJobZone must not be greater than maxJobZone")

    for field_name, tags in (("preferredTags", preferences.preferred_tags),
                             ("excludeTags", preferences.exclude_tags)):
        if any(not isinstance(t, str) for t in tags):
            errors.append(f"{field_name} must contain only strings")

    return errors
