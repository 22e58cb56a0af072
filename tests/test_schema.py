"""
Tests for schema validation of responses and job preferences.
"""

import pytest

from careerfit.schema import validate_preferences, validate_responses
from careerfit.types import JobPreferences, QuestionResponse


def as_responses(dicts):
    return [QuestionResponse.from_dict(d) for d in dicts]


class TestValidateResponses:
    """Test response-set validation."""

    def test_valid_set(self, valid_responses, answered_ids):
        """60 distinct, in-range, active responses have no errors."""
        assert validate_responses(as_responses(valid_responses), answered_ids) == []

    def test_wrong_count(self, valid_responses):
        """Count is reported with the actual number received."""
        errors = validate_responses(as_responses(valid_responses[:10]))
        assert errors == ["Expected 60 responses, got 10"]

    def test_every_out_of_range_score_reported(self, valid_responses):
        """Each bad score gets its own message."""
        responses = list(valid_responses)
        responses[3] = {"questionId": responses[3]["questionId"], "score": 0}
        responses[7] = {"questionId": responses[7]["questionId"], "score": 6}

        errors = validate_responses(as_responses(responses))

        assert len(errors) == 2
        assert errors[0] == (
            f"Response 3: invalid score 0 for question {responses[3]['questionId']} (must be 1-5)"
        )
        assert errors[1].startswith("Response 7: invalid score 6")

    def test_duplicates_listed_once(self, valid_responses):
        """Repeated ids are named once each, in first-seen order."""
        responses = list(valid_responses)
        first, second = responses[0]["questionId"], responses[1]["questionId"]
        responses[10] = {"questionId": first, "score": 3}
        responses[11] = {"questionId": first, "score": 3}
        responses[12] = {"questionId": second, "score": 3}

        errors = validate_responses(as_responses(responses))

        assert errors == [
            f"Duplicate question IDs detected: {first}, {second}. "
            "Each question must be answered exactly once."
        ]

    def test_multiple_violation_kinds_together(self, valid_responses):
        """Count, range and duplicate problems are all reported in one pass."""
        responses = list(valid_responses[:59])
        responses[0] = {"questionId": responses[0]["questionId"], "score": 7}
        responses[1] = {"questionId": responses[2]["questionId"], "score": 2}

        errors = validate_responses(as_responses(responses))

        assert len(errors) == 3
        assert errors[0].startswith("Expected 60 responses")
        assert errors[1].startswith("Response 0: invalid score 7")
        assert errors[2].startswith("Duplicate question IDs detected")

    def test_missing_and_malformed_fields(self, valid_responses):
        """Missing ids/scores and non-integers are reported per response."""
        responses = list(valid_responses)
        responses[0] = {"score": 3}
        responses[1] = {"questionId": responses[1]["questionId"]}
        responses[2] = {"questionId": "abc", "score": 3}
        responses[3] = {"questionId": responses[3]["questionId"], "score": 2.5}
        responses[4] = {"questionId": responses[4]["questionId"], "score": True}

        errors = validate_responses(as_responses(responses))

        assert "Response 0: missing questionId" in errors
        assert "Response 1: missing score" in errors
        assert "Response 2: questionId must be an integer, got 'abc'" in errors
        assert "Response 3: score must be an integer, got 2.5" in errors
        assert "Response 4: score must be an integer, got True" in errors

    def test_inactive_questions_named_together(self, valid_responses, answered_ids):
        """Ids outside the active set are listed in one message."""
        responses = list(valid_responses)
        responses[0] = {"questionId": 500, "score": 3}
        responses[1] = {"questionId": 501, "score": 3}

        errors = validate_responses(as_responses(responses), answered_ids)

        assert errors == ["Invalid or inactive questions: 500, 501"]

    def test_snake_case_keys_accepted(self, valid_responses):
        """QuestionResponse.from_dict accepts question_id as well."""
        responses = [{"question_id": r["questionId"], "score": r["score"]} for r in valid_responses]
        assert validate_responses(as_responses(responses)) == []


class TestValidatePreferences:
    """Test job preference validation."""

    def test_none_is_valid(self):
        assert validate_preferences(None) == []

    def test_valid_preferences(self):
        prefs = JobPreferences(preferred_job_zones=[3, 4], preferred_tags=["science"], min_job_zone=2, max_job_zone=5)
        assert validate_preferences(prefs) == []

    @pytest.mark.parametrize("prefs", [
        JobPreferences(preferred_job_zones=[0]),
        JobPreferences(preferred_job_zones=[6]),
        JobPreferences(min_job_zone=7),
        JobPreferences(max_job_zone="3"),
        JobPreferences(min_job_zone=4, max_job_zone=2),
        JobPreferences(preferred_tags=["ok", 3]),
        JobPreferences(exclude_tags=[None]),
    ])
    def test_invalid_preferences(self, prefs):
        """Out-of-range zones, inverted ranges and non-string tags are rejected."""
        assert len(validate_preferences(prefs)) == 1

    def test_from_dict_camel_case(self):
        """camelCase keys from JSON payloads are understood."""
        prefs = JobPreferences.from_dict({"preferredJobZones": [4], "excludeTags": ["sales"], "maxJobZone": 4})
        assert prefs.preferred_job_zones == [4]
        assert prefs.exclude_tags == ["sales"]
        assert prefs.max_job_zone == 4
        assert JobPreferences.from_dict({}) is None
