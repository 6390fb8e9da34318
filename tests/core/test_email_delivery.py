"""
Unit tests for batched email delivery and the message builders.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import pytest

from permission_slips.core.email import (
    EmailMessage,
    build_deadline_reminder,
    build_permission_request,
    send_batched,
    send_invite,
)


def _messages(count: int) -> list[EmailMessage]:
    return [
        EmailMessage(to_email=f"parent{i}@family.example.com", subject="Sign please", html_content="<p>hi</p>")
        for i in range(count)
    ]


class TestSendBatched:
    """Tests for send_batched."""

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_rest(self):
        messages = _messages(7)

        async def _send(to_email, subject, html_content):
            return to_email != "parent3@family.example.com"

        with patch("permission_slips.core.email.send_email", side_effect=_send) as send:
            report = await send_batched(messages, batch_size=3)

        assert send.call_count == 7
        assert len(report.sent) == 6
        assert report.delivered == [0, 1, 2, 4, 5, 6]
        assert report.errors == [{"email": "parent3@family.example.com", "error": "Email delivery failed"}]

    @pytest.mark.asyncio
    async def test_exception_is_captured(self):
        messages = _messages(2)

        async def _send(to_email, subject, html_content):
            if to_email == "parent0@family.example.com":
                raise ConnectionError("smtp down")
            return True

        with patch("permission_slips.core.email.send_email", side_effect=_send):
            report = await send_batched(messages, batch_size=5)

        assert report.sent == ["parent1@family.example.com"]
        assert report.errors == [{"email": "parent0@family.example.com", "error": "smtp down"}]

    @pytest.mark.asyncio
    async def test_order_is_kept_across_batches(self):
        messages = _messages(5)

        with patch("permission_slips.core.email.send_email", new_callable=AsyncMock, return_value=True):
            report = await send_batched(messages, batch_size=2)

        assert report.sent == [m.to_email for m in messages]
        assert report.delivered == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_delivered_tells_apart_messages_to_one_address(self):
        messages = [
            EmailMessage(to_email="mom@family.example.com", subject="Zoo Trip", html_content="<p>a</p>"),
            EmailMessage(to_email="mom@family.example.com", subject="Museum", html_content="<p>b</p>"),
        ]

        async def _send(to_email, subject, html_content):
            return subject == "Zoo Trip"

        with patch("permission_slips.core.email.send_email", side_effect=_send):
            report = await send_batched(messages, batch_size=5)

        assert report.sent == ["mom@family.example.com"]
        assert report.errors == [{"email": "mom@family.example.com", "error": "Email delivery failed"}]
        assert report.delivered == [0]

    @pytest.mark.asyncio
    async def test_empty_input(self):
        with patch("permission_slips.core.email.send_email", new_callable=AsyncMock) as send:
            report = await send_batched([])

        send.assert_not_called()
        assert report.sent == []
        assert report.errors == []


class TestBuilders:
    """Tests for the message builders."""

    def test_permission_request_lists_children_and_escapes(self):
        message = build_permission_request(
            to_email="mom@family.example.com",
            parent_name="Mom <Doe>",
            form_title="Zoo & Aquarium",
            student_names=["Alice Doe", "Bob Doe"],
            deadline=datetime(2026, 5, 1, tzinfo=UTC),
            form_id="form-1",
        )

        assert message.to_email == "mom@family.example.com"
        assert "Zoo &amp; Aquarium" in message.subject
        assert "Alice Doe, Bob Doe" in message.html_content
        assert "Mom &lt;Doe&gt;" in message.html_content
        assert "/forms/form-1/sign" in message.html_content

    def test_deadline_reminder_mentions_days(self):
        message = build_deadline_reminder(
            to_email="dad@family.example.com",
            parent_name="Dad",
            form_title="Zoo Trip",
            student_names=["Alice Doe"],
            days_remaining=2,
            form_id="form-1",
        )

        assert message.to_email == "dad@family.example.com"
        assert "Zoo Trip" in message.subject
        assert "in 2 day(s)" in message.html_content


class TestSendInvite:
    @pytest.mark.asyncio
    async def test_link_carries_the_token(self):
        with patch(
            "permission_slips.core.email.send_email", new_callable=AsyncMock, return_value=True
        ) as send:
            sent = await send_invite(
                to_email="new@springfield.edu",
                token="tok-123",
                role="TEACHER",
                inviter_name="Principal Skinner",
                school_name="Springfield Elementary",
            )

        assert sent is True
        kwargs = send.call_args.kwargs
        assert kwargs["to_email"] == "new@springfield.edu"
        assert "/invite/tok-123" in kwargs["html_content"]
        assert "Springfield Elementary" in kwargs["subject"]
