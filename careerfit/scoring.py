"""
RIASEC scoring.

Responsibilities:
- Validate a complete submission against the active question catalog.
- Aggregate per-trait totals, the three-letter career code and the tier.

Non-Responsibilities:
- No database access.
- No career matching.

Invariant:
Given identical responses and lookup, the result is identical; the career
code breaks ties by the canonical order R, I, A, S, E, C.
"""

from typing import Any, Dict, Iterable, List, Mapping, Sequence

from .constants import RIASEC_CATEGORIES, TIER_THRESHOLDS
from .errors import ValidationError
from .schema import validate_responses
from .types import QuestionResponse, RIASECScores, ScoringResult


def build_trait_lookup(questions: Iterable[Any]) -> Dict[int, str]:
    """Map question id -> RIASEC category for question rows or dicts."""
    lookup = {}
    for q in questions:
        if isinstance(q, Mapping):
            lookup[q["id"]] = q["category"]
        else:
            lookup[q.id] = q.category
    return lookup


def ranked_traits(scores: RIASECScores) -> List[str]:
    """Traits by descending total; sorted() is stable so ties keep R,I,A,S,E,C order."""
    return sorted(RIASEC_CATEGORIES, key=lambda cat: -scores.get(cat))


def career_code(scores: RIASECScores) -> str:
    """Three-letter code of the top traits, e.g. {R: 50, I: 45, A: 40, ...} -> "RIA"."""
    return "".join(ranked_traits(scores)[:3])


def tier_for(total_score: int) -> str:
    for threshold, name in TIER_THRESHOLDS:
        if total_score >= threshold:
            return name
    return TIER_THRESHOLDS[-1][1]


def aggregate(responses: Sequence[QuestionResponse], trait_lookup: Mapping[int, str]) -> RIASECScores:
    """Sum scores into trait buckets. Assumes the responses were validated."""
    totals = {cat: 0 for cat in RIASEC_CATEGORIES}
    for response in responses:
        totals[trait_lookup[response.question_id]] += response.score
    return RIASECScores.from_mapping(totals)


def score_responses(
    responses: Sequence[QuestionResponse],
    trait_lookup: Mapping[int, str],
) -> ScoringResult:
    """
    Score a full submission.

    Args:
        responses: Exactly 60 responses, one per distinct question
        trait_lookup: Active question id -> RIASEC category

    Returns:
        ScoringResult with per-trait totals, career code, top three and tier

    Raises:
        ValidationError: listing every violation found
    """
    errors = validate_responses(responses, active_question_ids=trait_lookup.keys())
    if errors:
        raise ValidationError(errors)

    scores = aggregate(responses, trait_lookup)
    total = scores.total
    ranked = ranked_traits(scores)

    return ScoringResult(
        scores=scores,
        career_code="".join(ranked[:3]),
        top_three=[{"category": cat, "score": scores.get(cat)} for cat in ranked[:3]],
        total_score=total,
        tier=tier_for(total),
    )
