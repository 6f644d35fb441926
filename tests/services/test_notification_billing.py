"""
Tests for NotificationBillingService: send state machine, history toggles
and the notification lifecycle with its billing order.
"""

from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4
from zoneinfo import ZoneInfo

import pytest

from ledger_kernel.exceptions import (
    DailyLimitReachedError,
    ForbiddenError,
    HistoryEntryNotFoundError,
    NotificationNotFoundError,
    UnauthorizedError,
    ValidationFailedError,
)
from ledger_kernel.models.notification import Notification
from ledger_kernel.models.order import Order
from ledger_kernel.services.notification_billing import (
    NotificationBillingService,
    to_millis,
)

TODAY = date(2024, 3, 10)


class TestCreateNotification:

    def test_without_price_has_no_order(self, make_notification, alex):
        info = make_notification()

        assert info.order_id is None
        assert info.author == "Alex"
        assert info.author_id == alex.user_id
        assert info.sent_count == 0
        assert info.history == ()

    def test_price_opens_billing_order(self, make_notification, session, admin, users):
        info = make_notification(actor=admin, price="1500", author="Alex")

        order = session.get(Order, info.order_id)
        assert order is not None
        assert order.service == "Рассылки"
        assert order.client == "Bakery"
        assert order.total_price == Decimal("1500")
        assert order.employee == "Alex"
        assert order.employee_id == users["alex"].id
        assert info.author_id == users["alex"].id

    def test_zero_price_has_no_order(self, make_notification):
        assert make_notification(price="0").order_id is None

    def test_order_service_from_policy(self, session, admin, clock, policy):
        billing = NotificationBillingService(
            session, replace(policy, notification_order_service="Push"), clock
        )

        info = billing.create_notification(
            admin,
            customer="Cafe",
            ad_text="Coffee",
            quantity=1,
            start_date=TODAY,
            end_date=TODAY,
            price="100",
        )

        assert session.get(Order, info.order_id).service == "Push"

    @pytest.mark.parametrize(
        "field, value",
        [
            ("quantity", 0),
            ("quantity", "3"),
            ("start_time", "25:00"),
            ("end_time", "9:30"),
            ("customer", "  "),
        ],
    )
    def test_invalid_fields(self, make_notification, field, value):
        with pytest.raises(ValidationFailedError) as exc_info:
            make_notification(**{field: value})
        assert exc_info.value.field == field

    def test_requires_identity(self, billing):
        with pytest.raises(UnauthorizedError):
            billing.create_notification(
                None,
                customer="Cafe",
                ad_text="Coffee",
                quantity=1,
                start_date=TODAY,
                end_date=TODAY,
            )


class TestRecordSend:

    def test_appends_history(self, make_notification, billing, alex, clock):
        info = make_notification()
        clock.advance()

        after = billing.record_send(info.id, None, alex)

        assert after.sent_count == 1
        [entry] = after.history
        assert entry.sequence == 1
        assert entry.user_id == alex.user_id
        assert entry.user_name == "Alex"
        assert entry.is_paid is False
        assert entry.timestamp == clock.now_utc()
        assert after.last_sent_time == clock.now_utc()

    def test_sender_label_comes_from_directory(self, make_notification, billing, editor):
        info = make_notification()

        after = billing.record_send(info.id, "someone else", editor)

        assert after.history[0].user_name == "ivan"

    def test_daily_limit_boundary(self, make_notification, billing, record_sends, alex, clock):
        info = make_notification(quantity=3, end_date=TODAY + timedelta(days=2))
        record_sends(info.id, alex, count=3)

        with pytest.raises(DailyLimitReachedError) as exc_info:
            billing.record_send(info.id, None, alex)
        assert exc_info.value.sent_today == 3

        clock.set_time(datetime(2024, 3, 11, 0, 0, 1, tzinfo=timezone.utc))
        after = billing.record_send(info.id, None, alex)

        midnight = datetime(2024, 3, 11, tzinfo=timezone.utc)
        assert sum(1 for e in after.history if e.timestamp >= midnight) == 1
        assert after.sent_count == 4
        assert len(after.history) == 4

    def test_daily_limit_uses_business_timezone(
        self, session, make_notification, alex, clock, policy
    ):
        moscow = replace(policy, business_timezone=ZoneInfo("Europe/Moscow"))
        billing = NotificationBillingService(session, moscow, clock)
        info = make_notification(quantity=2, end_date=TODAY + timedelta(days=2))

        # 23:00 in Moscow
        clock.set_time(datetime(2024, 3, 10, 20, 0, tzinfo=timezone.utc))
        billing.record_send(info.id, None, alex)
        clock.advance()
        billing.record_send(info.id, None, alex)
        with pytest.raises(DailyLimitReachedError):
            billing.record_send(info.id, None, alex)

        # 00:30 the next Moscow day, still 2024-03-10 in UTC
        clock.set_time(datetime(2024, 3, 10, 21, 30, tzinfo=timezone.utc))
        assert billing.record_send(info.id, None, alex).sent_count == 3

    def test_limit_failure_writes_nothing(
        self, make_notification, billing, record_sends, alex, captured_logs
    ):
        info = make_notification(quantity=1, end_date=TODAY + timedelta(days=1))
        record_sends(info.id, alex)

        with pytest.raises(DailyLimitReachedError):
            billing.record_send(info.id, None, alex)

        notification = billing.session.get(Notification, info.id)
        assert notification.sent_count == 1
        assert len(notification.sends) == 1
        assert any(r["message"] == "daily_limit_reached" for r in captured_logs())

    def test_campaign_auto_archive(self, make_notification, record_sends, alex):
        info = make_notification(quantity=1)

        after = record_sends(info.id, alex)

        assert after.sent_count == 1
        assert after.is_archived is True

    def test_not_archived_before_total(self, make_notification, record_sends, alex):
        info = make_notification(quantity=2, end_date=TODAY + timedelta(days=1))

        after = record_sends(info.id, alex, count=2)

        assert after.is_archived is False

    def test_missing_notification(self, billing, alex):
        with pytest.raises(NotificationNotFoundError):
            billing.record_send(uuid4(), None, alex)


class TestToggleSingleHistoryPayout:

    def test_flips_one_entry(self, make_notification, billing, record_sends, alex, admin):
        info = make_notification()
        after = record_sends(info.id, alex, count=2)
        target = after.history[1].timestamp

        toggled = billing.toggle_single_history_payout(info.id, target, admin)

        assert [e.is_paid for e in toggled.history] == [False, True]
        again = billing.toggle_single_history_payout(info.id, target, admin)
        assert [e.is_paid for e in again.history] == [False, False]

    def test_millisecond_precision(self, make_notification, billing, record_sends, alex, admin):
        info = make_notification()
        entry = record_sends(info.id, alex).history[0]
        near = entry.timestamp + timedelta(microseconds=400)

        toggled = billing.toggle_single_history_payout(info.id, near, admin)

        assert toggled.history[0].is_paid is True
        assert to_millis(near) == to_millis(entry.timestamp)

    def test_writes_no_ledger_line(
        self, make_notification, billing, record_sends, ledger_selector, alex, admin
    ):
        info = make_notification(actor=admin, price="1000", author="Alex")
        entry = record_sends(info.id, alex).history[0]

        billing.toggle_single_history_payout(info.id, entry.timestamp, admin)

        assert ledger_selector.transactions() == []

    def test_unknown_timestamp(self, make_notification, billing, record_sends, alex, admin):
        info = make_notification()
        record_sends(info.id, alex)

        with pytest.raises(HistoryEntryNotFoundError):
            billing.toggle_single_history_payout(
                info.id, datetime(2020, 1, 1, tzinfo=timezone.utc), admin
            )

    def test_author_forbidden(self, make_notification, billing, record_sends, alex):
        info = make_notification()
        entry = record_sends(info.id, alex).history[0]

        with pytest.raises(ForbiddenError):
            billing.toggle_single_history_payout(info.id, entry.timestamp, alex)


class TestUpdateAndArchive:

    def test_update_fields(self, make_notification, billing, alex):
        info = make_notification()

        updated = billing.update_notification(
            info.id, {"quantity": 7, "employee_rate": "60", "end_time": "18:30"}, alex
        )

        assert updated.quantity == 7
        assert updated.employee_rate == Decimal("60")
        assert updated.end_time == "18:30"

    def test_counters_not_updatable(self, make_notification, billing, alex):
        info = make_notification()

        with pytest.raises(ValidationFailedError):
            billing.update_notification(info.id, {"sent_count": 0}, alex)

    def test_toggle_archive(self, make_notification, billing, alex):
        info = make_notification()

        assert billing.toggle_archive(info.id, alex).is_archived is True
        assert billing.toggle_archive(info.id, alex).is_archived is False


class TestDeleteNotification:

    def test_author_deletes_own(self, make_notification, billing, session, alex):
        info = make_notification()

        assert billing.delete_notification(info.id, alex) == ()
        assert session.get(Notification, info.id) is None

    def test_other_author_forbidden(self, make_notification, billing, maria):
        info = make_notification()

        with pytest.raises(ForbiddenError):
            billing.delete_notification(info.id, maria)

    def test_deletes_linked_order_with_reversals(
        self, make_notification, billing, ledger, session, admin, clock
    ):
        info = make_notification(actor=admin, price="1000", author="Alex")
        ledger.update_order(info.order_id, {"is_paid": True}, admin)
        clock.advance()

        reversals = billing.delete_notification(info.id, admin)

        assert [(r.type, r.amount) for r in reversals] == [("EXPENSE", Decimal("1000"))]
        assert session.get(Order, info.order_id) is None
        assert session.get(Notification, info.id) is None

    def test_legacy_author_matched_by_name(self, billing, session, alex):
        legacy = Notification(
            customer="Old client",
            ad_text="Legacy campaign",
            quantity=1,
            start_date=TODAY,
            end_date=TODAY,
            author="Alex",
            author_id=None,
            sent_count=0,
            is_archived=False,
            created_by_id=alex.user_id,
        )
        session.add(legacy)
        session.flush()

        billing.delete_notification(legacy.id, alex)

        assert session.get(Notification, legacy.id) is None
