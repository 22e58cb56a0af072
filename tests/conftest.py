"""
Pytest configuration and shared fixtures.
"""

import os

# Keep test runs from writing log files; must happen before careerfit is imported.
os.environ.setdefault("LOG_TO_FILE", "0")

import pytest
from typing import Callable, Dict, List

from careerfit.config import reset_settings
from careerfit.constants import RIASEC_CATEGORIES
from careerfit.types import Career
from careerfit.database import CareerProfile, Question, dispose_engines, init_database, session_scope

QUESTIONS_PER_CATEGORY = 12
ANSWERED_PER_CATEGORY = 10


def category_for(question_id: int) -> str:
    return RIASEC_CATEGORIES[(question_id - 1) // QUESTIONS_PER_CATEGORY]


SAMPLE_CAREERS = [
    {
        "career_name": "Mechanical Engineer",
        "description": "Designs and builds machines.",
        "profile": {"R": 40, "I": 35, "A": 10, "S": 10, "E": 15, "C": 25},
        "job_zone": 4,
        "tags": ["engineering", "technical"],
    },
    {
        "career_name": "Research Scientist",
        "description": "Runs experiments and publishes findings.",
        "profile": {"R": 20, "I": 45, "A": 20, "S": 15, "E": 10, "C": 20},
        "job_zone": 5,
        "tags": ["science", "research"],
    },
    {
        "career_name": "Graphic Designer",
        "description": "Creates visual concepts.",
        "profile": {"R": 10, "I": 15, "A": 45, "S": 20, "E": 20, "C": 10},
        "job_zone": 3,
        "tags": ["creative", "design"],
    },
    {
        "career_name": "Teacher",
        "description": "Educates students.",
        "profile": {"R": 10, "I": 20, "A": 25, "S": 45, "E": 25, "C": 15},
        "job_zone": 4,
        "tags": ["education", "social"],
    },
    {
        "career_name": "Sales Manager",
        "description": "Leads a sales team.",
        "profile": {"R": 10, "I": 15, "A": 15, "S": 30, "E": 45, "C": 25},
        "job_zone": 4,
        "tags": ["business", "sales"],
    },
    {
        "career_name": "Accountant",
        "description": "Prepares financial records.",
        "profile": {"R": 10, "I": 25, "A": 5, "S": 15, "E": 25, "C": 45},
        "job_zone": 4,
        "tags": ["business", "finance"],
    },
    {
        "career_name": "Broken Record",
        "description": "Catalog row with a corrupt profile.",
        "profile": "not json",
        "job_zone": 2,
        "tags": [],
    },
]


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """No test may reach the real recommendation or mail services."""
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    monkeypatch.delenv("RESEND_API_KEY", raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def db_path(tmp_path):
    """Empty, initialized SQLite database file."""
    path = tmp_path / "careerfit.db"
    init_database(path)
    yield path
    dispose_engines()


@pytest.fixture
def seeded_db(db_path):
    """Database with 72 active questions (12 per trait) and the sample careers."""
    with session_scope(db_path) as db:
        for qid in range(1, QUESTIONS_PER_CATEGORY * len(RIASEC_CATEGORIES) + 1):
            db.add(Question(id=qid, text=f"Question {qid}", category=category_for(qid), is_active=True))
        for career in SAMPLE_CAREERS:
            db.add(CareerProfile(is_active=True, **career))
    return db_path


@pytest.fixture
def answered_ids() -> List[int]:
    """60 question ids, 10 from each trait."""
    return [
        qid
        for qid in range(1, QUESTIONS_PER_CATEGORY * len(RIASEC_CATEGORIES) + 1)
        if (qid - 1) % QUESTIONS_PER_CATEGORY < ANSWERED_PER_CATEGORY
    ]


@pytest.fixture
def make_responses(answered_ids) -> Callable[[Dict[str, int]], List[Dict[str, int]]]:
    """Factory: per-trait score -> 60 {"questionId", "score"} dicts."""
    def build(score_by_category: Dict[str, int]) -> List[Dict[str, int]]:
        return [
            {"questionId": qid, "score": score_by_category[category_for(qid)]}
            for qid in answered_ids
        ]
    return build


@pytest.fixture
def valid_responses(make_responses) -> List[Dict[str, int]]:
    """Totals R=50, I=40, A=30, S=20, E=10, C=30 (code RIA, total 180)."""
    return make_responses({"R": 5, "I": 4, "A": 3, "S": 2, "E": 1, "C": 3})


@pytest.fixture
def trait_lookup() -> Dict[int, str]:
    return {
        qid: category_for(qid)
        for qid in range(1, QUESTIONS_PER_CATEGORY * len(RIASEC_CATEGORIES) + 1)
    }


@pytest.fixture
def career_catalog() -> List[Career]:
    """SAMPLE_CAREERS as matcher input, ids starting at 1."""
    return [Career(id=i, **c) for i, c in enumerate(SAMPLE_CAREERS, start=1)]
