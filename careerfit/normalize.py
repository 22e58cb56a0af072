"""
Normalization of loosely typed catalog data.

Career profiles arrive as JSON columns written by hand or by import scripts,
so trait values may be missing, numeric strings, negative, or garbage.
normalize_profile returns a tagged ProfileResult instead of guessing.
"""

import json
import math
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

from .constants import RIASEC_CATEGORIES
from .errors import ProfileNormalizationError
from .types import Number, RIASECScores


@dataclass(frozen=True)
class ProfileResult:
    """Either `profile` (ok) or `error` (reason the profile was rejected)."""

    profile: Optional[RIASECScores] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.profile is not None

    @classmethod
    def success(cls, profile: RIASECScores) -> "ProfileResult":
        return cls(profile=profile)

    @classmethod
    def failure(cls, reason: str) -> "ProfileResult":
        return cls(error=reason)


def normalize_text(s: str) -> str:
    return " ".join(s.strip().lower().split())


def normalize_tags(tags: Optional[Iterable[Any]]) -> List[str]:
    """Lower-cased, whitespace-collapsed string tags; non-strings dropped."""
    if not tags:
        return []
    return [normalize_text(t) for t in tags if isinstance(t, str) and t.strip()]


def coerce_trait_value(category: str, value: Any) -> Number:
    """
    Interpret one trait value.

    Missing (None or blank string) -> 0, numbers and numeric strings are
    parsed and clamped to >= 0. Anything else raises.
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        raise ProfileNormalizationError(f"Invalid value for {category}: {value!r}")
    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        if not value.strip():
            return 0
        try:
            number = float(value.strip())
        except ValueError:
            raise ProfileNormalizationError(f"Invalid value for {category}: {value!r}")
        if number.is_integer():
            number = int(number)
    else:
        raise ProfileNormalizationError(f"Invalid value for {category}: {value!r}")

    if isinstance(number, float) and not math.isfinite(number):
        raise ProfileNormalizationError(f"Non-finite value for {category}: {value!r}")
    return max(0, number)


def normalize_profile(raw: Any) -> ProfileResult:
    """
    Parse a catalog career profile into RIASECScores.

    Accepts a mapping or a JSON object string. Never raises.
    """
    if raw is None:
        return ProfileResult.failure("missing profile")

    data = raw
    if isinstance(raw, str):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            return ProfileResult.failure(f"profile is not valid JSON: {e.msg}")

    if not isinstance(data, dict):
        return ProfileResult.failure(f"profile must be an object, got {type(data).__name__}")

    try:
        values = {cat: coerce_trait_value(cat, data.get(cat)) for cat in RIASEC_CATEGORIES}
    except ProfileNormalizationError as e:
        return ProfileResult.failure(str(e))

    return ProfileResult.success(RIASECScores.from_mapping(values))
