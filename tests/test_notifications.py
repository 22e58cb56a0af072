"""
Tests for notifications.py - message content, delivery and the non-fatal wrapper.
"""

import pytest
import requests

from careerfit import notifications
from careerfit.config import Settings
from careerfit.errors import NotificationError
from careerfit.notifications import (
    access_token_subject,
    access_token_text,
    dispatch,
    send_access_token,
    send_email,
    send_result_unlocked,
)

GRANT = {
    "tokenId": "abc",
    "token": "LINCO-A3F8",
    "type": "ENTERPRISE",
    "email": "admin@lincoln.edu",
    "name": "Mrs Bello",
    "institution": "Lincoln High",
    "expiresAt": "2027-03-01T09:00:00",
    "maxUsage": 40,
}


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload or {"id": "email-1"}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error", response=self)

    def json(self):
        return self._payload


@pytest.fixture
def settings():
    return Settings(
        resend_api_key="re_test",
        from_email="noreply@careerfit.test",
        support_email="help@careerfit.test",
        assessment_url="https://careerfit.test/results",
    )


@pytest.fixture
def sent(monkeypatch):
    messages = []

    def fake_post(url, headers, json, timeout):
        messages.append({"url": url, "headers": headers, "json": json})
        return FakeResponse()

    monkeypatch.setattr(notifications.requests, "post", fake_post)
    return messages


class TestMessageContent:
    """Test subject and body rendering."""

    def test_subjects(self):
        assert access_token_subject("ENTERPRISE", "Lincoln High") == "Your Lincoln High Career Assessment Access"
        assert access_token_subject("INDIVIDUAL", "Lincoln High") == "Your Career Assessment Access Token"
        assert access_token_subject("ENTERPRISE", None) == "Your Career Assessment Access Token"

    def test_enterprise_text(self, settings):
        text = access_token_text(GRANT, settings)
        assert text.startswith("Hi Mrs Bello,")
        assert "issued by Lincoln High" in text
        assert "Your access token: LINCO-A3F8" in text
        assert "Expires: March 1, 2027" in text
        assert "can be used 40 times" in text
        assert "https://careerfit.test/results?token=LINCO-A3F8" in text
        assert "help@careerfit.test" in text

    def test_individual_text_without_optional_settings(self):
        grant = dict(GRANT, type="INDIVIDUAL", name=None, institution=None, maxUsage=1)
        text = access_token_text(grant, Settings())
        assert text.startswith("Hello,")
        assert "can be used once" in text
        assert "issued by" not in text
        assert "View your results" not in text


class TestSendEmail:
    """Test delivery through the provider."""

    def test_not_configured(self):
        with pytest.raises(NotificationError):
            send_email("a@b.com", "Subject", "Body", settings=Settings())

    def test_message_posted(self, settings, sent):
        send_email("a@b.com", "Subject", "Body", html="<p>Body</p>", settings=settings)

        [message] = sent
        assert message["url"] == "https://api.resend.com/emails"
        assert message["headers"]["Authorization"] == "Bearer re_test"
        assert message["json"] == {
            "from": "noreply@careerfit.test",
            "to": ["a@b.com"],
            "subject": "Subject",
            "text": "Body",
            "html": "<p>Body</p>",
        }

    def test_send_access_token(self, settings, sent):
        send_access_token(GRANT, settings=settings)
        assert sent[0]["json"]["to"] == ["admin@lincoln.edu"]
        assert sent[0]["json"]["subject"] == "Your Lincoln High Career Assessment Access"

    def test_send_result_unlocked(self, settings, sent):
        send_result_unlocked("ada@example.com", "Ada Obi", "RIA", "Innovator", "tok", settings=settings)
        text = sent[0]["json"]["text"]
        assert "Career code: RIA" in text
        assert "?session=tok" in text

    def test_provider_error_raises(self, settings, monkeypatch):
        monkeypatch.setattr(notifications.requests, "post", lambda *a, **k: FakeResponse(422))
        with pytest.raises(requests.exceptions.HTTPError):
            send_email("a@b.com", "Subject", "Body", settings=settings)


class TestDispatch:
    """Test the non-fatal wrapper."""

    def test_success(self, settings, sent):
        assert dispatch(send_email, "a@b.com", "Subject", "Body", settings=settings) is True
        assert len(sent) == 1

    def test_failure_counted(self):
        before = notifications.logger.metrics["notifications_failed"]
        errors_before = notifications.logger.metrics["errors_by_type"].get("NotificationError", 0)

        assert dispatch(send_email, "a@b.com", "Subject", "Body", settings=Settings()) is False

        assert notifications.logger.metrics["notifications_failed"] == before + 1
        assert notifications.logger.metrics["errors_by_type"]["NotificationError"] == errors_before + 1
