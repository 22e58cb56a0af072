"""Scoring, matching and access-grant constants."""

# Canonical trait order; also the tie-break order for career codes.
RIASEC_CATEGORIES = ("R", "I", "A", "S", "E", "C")

TOTAL_QUESTIONS = 60
MIN_SCORE = 1
MAX_SCORE = 5

SESSION_TTL_HOURS = 24
SESSION_TOKEN_BYTES = 32

# Lower edges, inclusive, checked from the top down.
TIER_LEADER = "Leader"
TIER_INNOVATOR = "Innovator"
TIER_APPRENTICE = "Apprentice"
TIER_EXPLORER = "Explorer"
TIER_THRESHOLDS = (
    (181, TIER_LEADER),
    (121, TIER_INNOVATOR),
    (61, TIER_APPRENTICE),
    (0, TIER_EXPLORER),
)

BEST_FIT = "BEST_FIT"
GREAT_FIT = "GREAT_FIT"
GOOD_FIT = "GOOD_FIT"
BEST_FIT_THRESHOLD = 0.729
GREAT_FIT_THRESHOLD = 0.608

MATCH_DESCRIPTIONS = {
    BEST_FIT: "Excellent match - Your interests strongly align with this career",
    GREAT_FIT: "Great match - Your interests align well with this career",
    GOOD_FIT: "Good match - This career fits your profile",
}

DEFAULT_TOP_MATCHES = 10
SLOW_MATCH_MS = 100
MIN_JOB_ZONE = 1
MAX_JOB_ZONE = 5

# Access grants
INDIVIDUAL = "INDIVIDUAL"
ENTERPRISE = "ENTERPRISE"
GRANT_TYPES = (INDIVIDUAL, ENTERPRISE)

ACTIVE = "ACTIVE"
USED = "USED"
EXPIRED = "EXPIRED"
REVOKED = "REVOKED"

INDIVIDUAL_TTL_DAYS = 30
ENTERPRISE_TTL_DAYS = 365
INDIVIDUAL_MAX_USAGE = 1

TOKEN_PREFIX_LENGTH = 5
TOKEN_ISSUE_ATTEMPTS = 5

REASON_NOT_FOUND = "not found"
REASON_EXPIRED = "expired"
REASON_LIMIT_EXCEEDED = "usage limit exceeded"

# Sessions
STARTED = "STARTED"
COMPLETED = "COMPLETED"

STREAMS = ("Art", "Science", "Commercial")
