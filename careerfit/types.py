from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from .constants import MATCH_DESCRIPTIONS, RIASEC_CATEGORIES

Number = Union[int, float]


@dataclass
class RIASECScores:
    R: Number = 0
    I: Number = 0
    A: Number = 0
    S: Number = 0
    E: Number = 0
    C: Number = 0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Number]) -> "RIASECScores":
        return cls(**{cat: data.get(cat, 0) for cat in RIASEC_CATEGORIES})

    def get(self, category: str) -> Number:
        return getattr(self, category)

    def vector(self) -> List[float]:
        """Values in canonical R, I, A, S, E, C order."""
        return [float(getattr(self, cat)) for cat in RIASEC_CATEGORIES]

    @property
    def total(self) -> Number:
        return sum(getattr(self, cat) for cat in RIASEC_CATEGORIES)

    def to_dict(self) -> Dict[str, Number]:
        return {cat: getattr(self, cat) for cat in RIASEC_CATEGORIES}


@dataclass(frozen=True)
class QuestionResponse:
    question_id: Any
    score: Any

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "QuestionResponse":
        """Accepts snake_case or camelCase keys."""
        qid = data.get("question_id", data.get("questionId"))
        return cls(question_id=qid, score=data.get("score"))

    def to_dict(self) -> Dict[str, Any]:
        return {"questionId": self.question_id, "score": self.score}


@dataclass
class ScoringResult:
    scores: RIASECScores
    career_code: str
    top_three: List[Dict[str, Any]]
    total_score: int
    tier: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scores": self.scores.to_dict(),
            "careerCode": self.career_code,
            "topThree": list(self.top_three),
            "totalScore": self.total_score,
            "tier": self.tier,
        }


@dataclass
class Career:
    """A catalog career as the matcher sees it. `profile` is unparsed."""

    id: int
    career_name: str
    description: str = ""
    profile: Any = None
    job_zone: int = 1
    tags: Sequence[str] = field(default_factory=list)


@dataclass
class JobPreferences:
    preferred_job_zones: List[int] = field(default_factory=list)
    preferred_tags: List[str] = field(default_factory=list)
    exclude_tags: List[str] = field(default_factory=list)
    min_job_zone: Optional[int] = None
    max_job_zone: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> Optional["JobPreferences"]:
        if not data:
            return None

        def pick(snake: str, camel: str, default=None):
            return data.get(snake, data.get(camel, default))

        return cls(
            preferred_job_zones=list(pick("preferred_job_zones", "preferredJobZones") or []),
            preferred_tags=list(pick("preferred_tags", "preferredTags") or []),
            exclude_tags=list(pick("exclude_tags", "excludeTags") or []),
            min_job_zone=pick("min_job_zone", "minJobZone"),
            max_job_zone=pick("max_job_zone", "maxJobZone"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CareerMatch:
    career_id: int
    career_name: str
    description: str
    profile: RIASECScores
    job_zone: int
    tags: List[str]
    correlation: float
    match_type: str
    match_score: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "careerId": self.career_id,
            "careerName": self.career_name,
            "description": self.description,
            "profile": self.profile.to_dict(),
            "jobZone": self.job_zone,
            "tags": list(self.tags),
            "correlation": self.correlation,
            "matchType": self.match_type,
            "matchDescription": MATCH_DESCRIPTIONS[self.match_type],
            "matchScore": self.match_score,
        }


@dataclass
class MatchStatistics:
    total: int = 0
    best_fit: int = 0
    great_fit: int = 0
    good_fit: int = 0
    avg_correlation: float = 0.0
    skipped_careers: int = 0
    considered: int = 0
    fallback_used: bool = False
    processing_time_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "bestFit": self.best_fit,
            "greatFit": self.great_fit,
            "goodFit": self.good_fit,
            "avgCorrelation": self.avg_correlation,
            "skippedCareers": self.skipped_careers,
            "considered": self.considered,
            "fallbackUsed": self.fallback_used,
            "processingTimeMs": self.processing_time_ms,
        }


@dataclass
class MatchReport:
    matches: List[CareerMatch]
    statistics: MatchStatistics


@dataclass
class Viewer:
    """Who is unlocking a result; stored on the usage record."""

    first_name: str
    last_name: str
    student_class: str
    contact_email: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class UnlockOutcome:
    is_review: bool
    unlocked_at: datetime
    last_viewed_at: datetime
    view_count: int
    remaining_usage: int
    grant_type: str
    institution: Optional[str]
    expires_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isReview": self.is_review,
            "unlockedAt": self.unlocked_at.isoformat(),
            "lastViewedAt": self.last_viewed_at.isoformat(),
            "viewCount": self.view_count,
            "remainingUsage": self.remaining_usage,
            "tokenType": self.grant_type,
            "institution": self.institution,
            "expiresAt": self.expires_at.isoformat(),
        }
