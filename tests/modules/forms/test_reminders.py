"""
Unit tests for reminder grouping, delivery and staff-triggered bulk reminders.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from factories import OTHER_SCHOOL_ID, make_account, make_form, make_student, make_submission

from permission_slips.core.email import DeliveryReport
from permission_slips.modules.forms.models import FormStatus
from permission_slips.modules.forms.reminders import (
    bulk_remind,
    days_until,
    deliver_reminders,
    group_reminders,
)

MODULE = "permission_slips.modules.forms.reminders"


@pytest.fixture
def mock_repository():
    with (
        patch(f"{MODULE}.repository") as repo,
        patch(
            "permission_slips.modules.forms.service.repository.get_share",
            new_callable=AsyncMock,
            return_value=None,
        ),
    ):
        repo.mark_reminders_sent = AsyncMock()
        repo.get_forms_by_ids = AsyncMock(return_value=[])
        repo.list_pending_submissions = AsyncMock(return_value=[])
        yield repo


class TestDaysUntil:
    @pytest.mark.parametrize(
        "delta, expected",
        [
            (timedelta(days=2), 2),
            (timedelta(days=1, hours=1), 2),
            (timedelta(hours=3), 1),
            (timedelta(0), 0),
            (timedelta(hours=-5), 0),
        ],
    )
    def test_rounds_up_and_floors_at_zero(self, delta, expected):
        now = datetime(2026, 5, 1, 12, tzinfo=UTC)
        assert days_until(now + delta, now) == expected


class TestGroupReminders:
    def test_one_group_per_parent_and_form(self, teacher):
        zoo = make_form(teacher.id, title="Zoo Trip")
        museum = make_form(teacher.id, title="Museum")
        mom = make_account("Mom")
        dad = make_account("Dad")
        alice = make_student("Alice")
        bob = make_student("Bob")

        groups = group_reminders(
            [
                make_submission(zoo, mom, alice),
                make_submission(zoo, mom, bob),
                make_submission(museum, mom, alice),
                make_submission(zoo, dad, alice),
            ]
        )

        assert [(g.parent_email, g.form_title) for g in groups] == [
            (mom.email, "Zoo Trip"),
            (mom.email, "Museum"),
            (dad.email, "Zoo Trip"),
        ]
        assert groups[0].student_names == ["Alice Doe", "Bob Doe"]
        assert len(groups[0].submission_ids) == 2

    def test_empty(self):
        assert group_reminders([]) == []


class TestDeliverReminders:
    """Only the groups whose own email went out are stamped."""

    @pytest.mark.asyncio
    async def test_only_delivered_groups_are_stamped(self, mock_db, mock_repository, teacher):
        now = datetime.now(UTC)
        form = make_form(teacher.id, deadline=now + timedelta(days=2))
        mom = make_account("Mom")
        dad = make_account("Dad")
        mom_sub = make_submission(form, mom, make_student("Alice"))
        dad_sub = make_submission(form, dad, make_student("Bob"))
        report = DeliveryReport(
            sent=[mom.email],
            errors=[{"email": dad.email, "error": "Email delivery failed"}],
            delivered=[0],
        )

        with patch(f"{MODULE}.send_batched", new_callable=AsyncMock, return_value=report) as send:
            groups, result = await deliver_reminders(mock_db, [mom_sub, dad_sub], now)

        assert len(send.call_args.args[0]) == 2
        assert len(groups) == 2
        assert result is report
        mock_repository.mark_reminders_sent.assert_called_once_with(mock_db, [mom_sub.id], now)
        mock_db.commit.assert_called_once()

    @pytest.mark.asyncio
    async def test_failed_form_is_not_stamped_when_same_parent_got_another(
        self, mock_db, mock_repository, teacher
    ):
        now = datetime.now(UTC)
        zoo = make_form(teacher.id, title="Zoo Trip", deadline=now + timedelta(days=2))
        museum = make_form(teacher.id, title="Museum", deadline=now + timedelta(days=2))
        mom = make_account("Mom")
        alice = make_student("Alice")
        zoo_sub = make_submission(zoo, mom, alice)
        museum_sub = make_submission(museum, mom, alice)
        report = DeliveryReport(
            sent=[mom.email],
            errors=[{"email": mom.email, "error": "Email delivery failed"}],
            delivered=[0],
        )

        with patch(f"{MODULE}.send_batched", new_callable=AsyncMock, return_value=report):
            await deliver_reminders(mock_db, [zoo_sub, museum_sub], now)

        stamped = mock_repository.mark_reminders_sent.call_args.args[1]
        assert stamped == [zoo_sub.id]

    @pytest.mark.asyncio
    async def test_stamp_failure_is_logged_not_raised(self, mock_db, mock_repository, teacher):
        form = make_form(teacher.id)
        mom = make_account("Mom")
        mock_repository.mark_reminders_sent.side_effect = RuntimeError("deadlock")

        with patch(
            f"{MODULE}.send_batched",
            new_callable=AsyncMock,
            return_value=DeliveryReport(sent=[mom.email], delivered=[0]),
        ):
            _, report = await deliver_reminders(
                mock_db, [make_submission(form, mom, make_student("Alice"))], datetime.now(UTC)
            )

        assert report.sent == [mom.email]
        mock_db.rollback.assert_called_once()
        mock_db.commit.assert_not_called()


class TestBulkRemind:
    """Tests for bulk_remind."""

    @pytest.mark.asyncio
    async def test_reminds_active_owned_forms_and_skips_the_rest(
        self, mock_db, mock_repository, teacher
    ):
        active = make_form(teacher.id, status=FormStatus.ACTIVE)
        draft = make_form(teacher.id, status=FormStatus.DRAFT)
        foreign = make_form("someone-else", status=FormStatus.ACTIVE)
        mock_repository.get_forms_by_ids.return_value = [active, draft, foreign]
        mom = make_account("Mom")
        pending = [make_submission(active, mom, make_student("Alice"))]
        mock_repository.list_pending_submissions.return_value = pending

        with patch(
            f"{MODULE}.send_batched",
            new_callable=AsyncMock,
            return_value=DeliveryReport(sent=[mom.email], delivered=[0]),
        ):
            result = await bulk_remind(
                mock_db, teacher, [active.id, draft.id, foreign.id, "missing", active.id]
            )

        assert result.forms_processed == 1
        assert result.total_sent == 1
        assert result.total_errors == 0
        assert [(s.form_id, s.reason) for s in result.skipped] == [
            (draft.id, "NOT_ACTIVE"),
            (foreign.id, "FORBIDDEN"),
            ("missing", "NOT_FOUND"),
        ]
        mock_repository.list_pending_submissions.assert_called_once_with(mock_db, [active.id])
        assert mock_repository.mark_reminders_sent.call_args.args[1] == [pending[0].id]

    @pytest.mark.asyncio
    async def test_admin_of_other_school_is_forbidden(self, mock_db, mock_repository, teacher, admin):
        form = make_form(teacher.id, status=FormStatus.ACTIVE, school_id=OTHER_SCHOOL_ID)
        mock_repository.get_forms_by_ids.return_value = [form]

        with patch(f"{MODULE}.send_batched", new_callable=AsyncMock) as send:
            result = await bulk_remind(mock_db, admin, [form.id])

        assert result.forms_processed == 0
        assert result.skipped[0].reason == "FORBIDDEN"
        send.assert_not_called()
        mock_repository.list_pending_submissions.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_emails_are_counted(self, mock_db, mock_repository, teacher):
        form = make_form(teacher.id, status=FormStatus.ACTIVE)
        mock_repository.get_forms_by_ids.return_value = [form]
        mom = make_account("Mom")
        mock_repository.list_pending_submissions.return_value = [
            make_submission(form, mom, make_student("Alice"))
        ]
        report = DeliveryReport(errors=[{"email": mom.email, "error": "Email delivery failed"}])

        with patch(f"{MODULE}.send_batched", new_callable=AsyncMock, return_value=report):
            result = await bulk_remind(mock_db, teacher, [form.id])

        assert result.total_sent == 0
        assert result.total_errors == 1
        assert mock_repository.mark_reminders_sent.call_args.args[1] == []
