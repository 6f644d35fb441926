"""
Tests for PayoutReconciler.pay_all_for_employee.

Covers the mixed order-linked / order-less payout, the no-op repeat, chunk
isolation when one order's ceiling is exhausted, and name/id attribution.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from ledger_kernel.domain.values import Category
from ledger_kernel.exceptions import ForbiddenError, UnauthorizedError, ValidationFailedError
from ledger_kernel.models.order import EmployeePayment
from ledger_kernel.models.user import User
from ledger_kernel.services.payout_reconciler import PayoutStatus

TODAY = date(2024, 3, 10)


@pytest.fixture
def alex_work(make_notification, record_sends, admin, alex):
    """
    Notification A: no order, default rate, 3 unpaid sends by Alex.
    Notification B: order-linked, rate 60, 2 unpaid sends by Alex.
    """
    a = make_notification(quantity=5)
    record_sends(a.id, alex, count=3)
    b = make_notification(actor=admin, price="1000", author="Alex", employee_rate="60")
    record_sends(b.id, alex, count=2)
    return a, b


class TestPayAll:

    def test_reconciliation_scenario(
        self, alex_work, reconciler, payout_selector, ledger_selector, admin, users
    ):
        a, b = alex_work

        result = reconciler.pay_all_for_employee("Alex", admin)

        assert result.status is PayoutStatus.PAID
        assert result.sends_paid == 5
        assert result.marked_paid == (a.id,)
        [chunk] = result.paid_chunks
        assert chunk.order_id == b.order_id
        assert chunk.amount == Decimal("120")
        assert chunk.send_count == 2
        assert result.total_paid == Decimal("120")

        assert all(e.is_paid for e in payout_selector.get_notification(a.id).history)
        assert all(e.employee_payment_id is None
                   for e in payout_selector.get_notification(a.id).history)
        b_history = payout_selector.get_notification(b.id).history
        assert all(e.is_paid for e in b_history)
        assert {e.employee_payment_id for e in b_history} == {chunk.employee_payment_id}

        order = ledger_selector.get_order(b.order_id)
        assert order.employee_paid_amount == Decimal("120")
        [payment] = order.employee_payments
        assert payment.id == chunk.employee_payment_id
        assert payment.recipient == "Alex"
        assert payment.recipient_id == users["alex"].id
        assert payment.notes == "Выплата за рассылку (автоматически)"

        [txn] = ledger_selector.transactions()
        assert txn.type == "EXPENSE"
        assert txn.category == Category.SALARY
        assert txn.amount == Decimal("120")
        assert txn.order_id == b.order_id
        assert txn.employee_payment_id == chunk.employee_payment_id

    def test_second_call_is_nothing_to_pay(self, alex_work, reconciler, session, admin):
        reconciler.pay_all_for_employee("Alex", admin)
        paid_before = session.query(EmployeePayment).count()

        again = reconciler.pay_all_for_employee("Alex", admin)

        assert again.status is PayoutStatus.NOTHING_TO_PAY
        assert again.is_success
        assert again.total_paid == Decimal("0")
        assert session.query(EmployeePayment).count() == paid_before

    def test_nobody_matches(self, alex_work, reconciler, admin):
        result = reconciler.pay_all_for_employee("Maria", admin)

        assert result.status is PayoutStatus.NOTHING_TO_PAY

    def test_only_unpaid_sends_are_paid(
        self, make_notification, record_sends, billing, reconciler, admin, alex
    ):
        b = make_notification(actor=admin, price="1000", author="Alex", employee_rate="60")
        history = record_sends(b.id, alex, count=3).history
        billing.toggle_single_history_payout(b.id, history[0].timestamp, admin)

        result = reconciler.pay_all_for_employee("Alex", admin)

        assert result.total_paid == Decimal("120")
        assert result.sends_paid == 2

    def test_other_senders_untouched(
        self, make_notification, record_sends, reconciler, payout_selector, admin, alex, maria
    ):
        b = make_notification(actor=admin, price="1000", author="Alex", employee_rate="60")
        record_sends(b.id, alex)
        record_sends(b.id, maria)

        result = reconciler.pay_all_for_employee("Alex", admin)

        assert result.total_paid == Decimal("60")
        history = payout_selector.get_notification(b.id).history
        assert [(e.user_name, e.is_paid) for e in history] == [
            ("Alex", True),
            ("Maria", False),
        ]

    def test_exhausted_ceiling_fails_chunk_only(
        self, make_notification, record_sends, reconciler, payout_selector, admin, alex, captured_logs
    ):
        a = make_notification(quantity=5)
        record_sends(a.id, alex, count=2)
        # ceiling 85 < 2 x 60
        b = make_notification(actor=admin, price="100", author="Alex", employee_rate="60")
        record_sends(b.id, alex, count=2)

        result = reconciler.pay_all_for_employee("Alex", admin)

        assert result.status is PayoutStatus.PARTIAL
        assert result.paid_chunks == ()
        assert result.marked_paid == (a.id,)
        [failed] = result.failed_chunks
        assert failed.order_id == b.order_id
        assert failed.error_code == "LIMIT_EXCEEDED"
        assert failed.amount == Decimal("120")
        assert not any(e.is_paid for e in payout_selector.get_notification(b.id).history)
        assert any(r["message"] == "payout_chunk_failed" for r in captured_logs())

    def test_all_chunks_failing_is_failed(
        self, make_notification, record_sends, reconciler, ledger_selector, admin, alex
    ):
        b = make_notification(actor=admin, price="100", author="Alex", employee_rate="60")
        record_sends(b.id, alex, count=2)

        result = reconciler.pay_all_for_employee("Alex", admin)

        assert result.status is PayoutStatus.FAILED
        assert not result.is_success
        assert ledger_selector.transactions() == []
        assert ledger_selector.get_order(b.order_id).employee_paid_amount == Decimal("0")

    def test_default_rate_applies(self, make_notification, record_sends, reconciler, admin, alex):
        b = make_notification(actor=admin, price="1000", author="Alex")
        record_sends(b.id, alex, count=2)

        result = reconciler.pay_all_for_employee("Alex", admin)

        assert result.total_paid == Decimal("104")


class TestAttribution:

    def test_renamed_user_matched_by_live_label(
        self, make_notification, record_sends, reconciler, session, admin, alex
    ):
        b = make_notification(actor=admin, price="1000", author="Alex", employee_rate="60")
        record_sends(b.id, alex, count=2)
        session.get(User, alex.user_id).display_name = "Alexander"
        session.flush()

        result = reconciler.pay_all_for_employee("Alexander", admin)

        assert result.total_paid == Decimal("120")

    def test_snapshot_still_matches_after_rename(
        self, make_notification, record_sends, reconciler, session, admin, alex
    ):
        b = make_notification(actor=admin, price="1000", author="Alex", employee_rate="60")
        record_sends(b.id, alex, count=1)
        session.get(User, alex.user_id).display_name = "Alexander"
        session.flush()

        result = reconciler.pay_all_for_employee("Alex", admin)

        assert result.total_paid == Decimal("60")

    def test_employee_id_separates_namesakes(
        self, make_notification, record_sends, reconciler, session, admin, alex, maria
    ):
        # two users sharing a display name
        session.get(User, maria.user_id).display_name = "Alex"
        session.flush()
        b = make_notification(actor=admin, price="1000", author="Alex", employee_rate="60")
        record_sends(b.id, alex)
        record_sends(b.id, maria)

        result = reconciler.pay_all_for_employee("Alex", admin, employee_id=alex.user_id)

        assert result.total_paid == Decimal("60")
        assert result.sends_paid == 1


class TestAuthorization:

    def test_author_forbidden(self, alex_work, reconciler, alex):
        with pytest.raises(ForbiddenError):
            reconciler.pay_all_for_employee("Alex", alex)

    def test_anonymous_unauthorized(self, reconciler):
        with pytest.raises(UnauthorizedError):
            reconciler.pay_all_for_employee("Alex", None)

    def test_blank_name_rejected(self, reconciler, chief):
        with pytest.raises(ValidationFailedError):
            reconciler.pay_all_for_employee("   ", chief)


class TestDeletePayoutResetsHistory:

    def test_deleting_payout_reopens_sends(
        self, alex_work, reconciler, ledger, payout_selector, ledger_selector, admin, clock
    ):
        _, b = alex_work
        result = reconciler.pay_all_for_employee("Alex", admin)
        [chunk] = result.paid_chunks
        clock.advance()

        reversal = ledger.delete_employee_payment(chunk.employee_payment_id, admin)

        assert reversal.type == "INCOME"
        assert reversal.amount == Decimal("120")
        history = payout_selector.get_notification(b.id).history
        assert not any(e.is_paid for e in history)
        assert all(e.employee_payment_id is None for e in history)
        assert ledger_selector.get_order(b.order_id).employee_paid_amount == Decimal("0")

        again = reconciler.pay_all_for_employee("Alex", admin)
        assert again.total_paid == Decimal("120")
