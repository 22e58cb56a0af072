"""
Career matching engine.

Responsibilities:
- Filter the catalog by job preferences.
- Correlate the user's RIASEC totals with every remaining career profile.
- Classify, rank and truncate; fall back to the whole catalog when the
  filtered set produces nothing.

Non-Responsibilities:
- No database access.
- No scoring of raw responses.

Invariant:
Never returns an empty list while at least one catalog career has a
numerically valid profile.
"""

import math
import time
from typing import Iterable, List, Optional, Sequence, Tuple

from .constants import (
    BEST_FIT,
    BEST_FIT_THRESHOLD,
    DEFAULT_TOP_MATCHES,
    GOOD_FIT,
    GREAT_FIT,
    GREAT_FIT_THRESHOLD,
    SLOW_MATCH_MS,
)
from .logger import get_logger
from .normalize import normalize_profile, normalize_tags
from .types import (
    Career,
    CareerMatch,
    JobPreferences,
    MatchReport,
    MatchStatistics,
    RIASECScores,
)

logger = get_logger()


def pearson_correlation(x: RIASECScores, y: RIASECScores) -> float:
    """
    Pearson r over the six trait dimensions.

    Zero variance in either vector yields 0.0. The result is clamped to
    [-1, 1] to absorb floating point drift.
    """
    xs = x.vector()
    ys = y.vector()
    n = len(xs)
    mean_x = sum(xs) / n
    mean_y = sum(ys) / n

    numerator = 0.0
    sum_x2 = 0.0
    sum_y2 = 0.0
    for xi, yi in zip(xs, ys):
        dx = xi - mean_x
        dy = yi - mean_y
        numerator += dx * dy
        sum_x2 += dx * dx
        sum_y2 += dy * dy

    denominator = math.sqrt(sum_x2 * sum_y2)
    if denominator == 0:
        return 0.0
    return max(-1.0, min(1.0, numerator / denominator))


def match_type(correlation: float) -> str:
    """Classify by |r|; negative correlations are still at least GOOD_FIT."""
    strength = abs(correlation)
    if strength >= BEST_FIT_THRESHOLD:
        return BEST_FIT
    if strength >= GREAT_FIT_THRESHOLD:
        return GREAT_FIT
    return GOOD_FIT


def match_score(correlation: float) -> int:
    """Map r in [-1, 1] onto 0..100, halves rounded up."""
    return math.floor(((correlation + 1) / 2) * 100 + 0.5)


def passes_preference_filter(career: Career, preferences: Optional[JobPreferences]) -> bool:
    if preferences is None:
        return True

    if preferences.preferred_job_zones and career.job_zone not in preferences.preferred_job_zones:
        return False
    if preferences.min_job_zone is not None and career.job_zone < preferences.min_job_zone:
        return False
    if preferences.max_job_zone is not None and career.job_zone > preferences.max_job_zone:
        return False

    career_tags = set(normalize_tags(career.tags))

    excluded = normalize_tags(preferences.exclude_tags)
    if excluded and any(tag in career_tags for tag in excluded):
        return False

    preferred = normalize_tags(preferences.preferred_tags)
    if preferred and not any(tag in career_tags for tag in preferred):
        return False

    return True


def _correlate_all(
    user_scores: RIASECScores,
    careers: Sequence[Career],
) -> Tuple[List[CareerMatch], int]:
    """Build a match for every career with a valid profile; count the rest."""
    matches: List[CareerMatch] = []
    skipped = 0

    for career in careers:
        result = normalize_profile(career.profile)
        if not result.ok:
            skipped += 1
            logger.warning(
                "Skipping career with invalid profile",
                career_id=career.id,
                career_name=career.career_name,
                reason=result.error,
            )
            continue

        correlation = pearson_correlation(user_scores, result.profile)
        matches.append(CareerMatch(
            career_id=career.id,
            career_name=career.career_name,
            description=career.description,
            profile=result.profile,
            job_zone=career.job_zone,
            tags=list(career.tags or []),
            correlation=correlation,
            match_type=match_type(correlation),
            match_score=match_score(correlation),
        ))

    return matches, skipped


def match_statistics(
    matches: Sequence[CareerMatch],
    processing_time_ms: float,
    skipped_careers: int = 0,
    considered: int = 0,
    fallback_used: bool = False,
) -> MatchStatistics:
    stats = MatchStatistics(
        total=len(matches),
        best_fit=sum(1 for m in matches if m.match_type == BEST_FIT),
        great_fit=sum(1 for m in matches if m.match_type == GREAT_FIT),
        good_fit=sum(1 for m in matches if m.match_type == GOOD_FIT),
        skipped_careers=skipped_careers,
        considered=considered,
        fallback_used=fallback_used,
        processing_time_ms=round(processing_time_ms, 2),
    )
    if matches:
        stats.avg_correlation = round(sum(m.correlation for m in matches) / len(matches), 3)
    return stats


def match_careers(
    user_scores: RIASECScores,
    careers: Iterable[Career],
    preferences: Optional[JobPreferences] = None,
    top_n: int = DEFAULT_TOP_MATCHES,
) -> MatchReport:
    """
    Rank catalog careers against a user's RIASEC totals.

    Args:
        user_scores: Aggregated RIASEC totals
        careers: Active catalog careers (unparsed profiles)
        preferences: Optional job-zone and tag filters, applied before correlation
        top_n: Number of matches to return (>= 1)

    Returns:
        MatchReport ordered by descending correlation; ties keep catalog order

    Raises:
        ValueError: If top_n < 1
    """
    if isinstance(top_n, bool) or not isinstance(top_n, int) or top_n < 1:
        raise ValueError("topN must be a positive integer")

    started = time.perf_counter()
    catalog = list(careers)

    filtered = [c for c in catalog if passes_preference_filter(c, preferences)]
    logger.debug(
        "Matching careers after preference filtering",
        considered=len(filtered),
        catalog=len(catalog),
    )

    matches, skipped = _correlate_all(user_scores, filtered)
    fallback_used = False

    if not matches and catalog:
        logger.warning(
            "No matches with current preferences; falling back to full catalog",
            filtered=len(filtered),
            catalog=len(catalog),
        )
        matches, skipped = _correlate_all(user_scores, catalog)
        fallback_used = True

    # list.sort is stable, reverse included
    matches.sort(key=lambda m: m.correlation, reverse=True)
    top = matches[:top_n]

    elapsed_ms = (time.perf_counter() - started) * 1000
    if elapsed_ms > SLOW_MATCH_MS:
        logger.warning("Slow career matching", elapsed_ms=round(elapsed_ms, 2), catalog=len(catalog))
    if skipped:
        logger.warning("Skipped careers due to invalid profiles", skipped=skipped)

    stats = match_statistics(
        top,
        elapsed_ms,
        skipped_careers=skipped,
        considered=len(filtered),
        fallback_used=fallback_used,
    )
    return MatchReport(matches=top, statistics=stats)
