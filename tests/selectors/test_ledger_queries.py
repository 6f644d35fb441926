"""Tests for LedgerSelector and PayoutSelector."""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import NotificationNotFoundError, OrderNotFoundError
from ledger_kernel.selectors.payout_selector import UnpaidWork

TODAY = date(2024, 3, 10)


class TestBalanceSheet:

    def test_empty_ledger(self, ledger_selector):
        summary = ledger_selector.balance_sheet()

        assert summary.total_payments == Decimal("0")
        assert summary.total_income == Decimal("0")
        assert summary.total_expenses == Decimal("0")
        assert summary.balance == Decimal("0")

    def test_balance_arithmetic(self, make_order, ledger, ledger_selector, admin):
        order = make_order()
        ledger.add_payment(order.id, admin, amount="200")
        ledger.create_transaction(admin, type="INCOME", amount="300", category="Гранты")
        ledger.create_transaction(admin, type="EXPENSE", amount="120.50", category="Аренда")

        summary = ledger_selector.balance_sheet()

        assert summary.total_payments == Decimal("200")
        assert summary.total_income == Decimal("300")
        assert summary.total_expenses == Decimal("120.50")
        assert summary.revenue == Decimal("500")
        assert summary.balance == Decimal("379.50")

    def test_since_filters_by_date(self, ledger, ledger_selector, admin):
        ledger.create_transaction(
            admin,
            type="INCOME",
            amount="100",
            date=datetime(2024, 1, 15, tzinfo=timezone.utc),
        )
        ledger.create_transaction(
            admin,
            type="INCOME",
            amount="40",
            date=datetime(2024, 3, 1, tzinfo=timezone.utc),
        )

        summary = ledger_selector.balance_sheet(since=datetime(2024, 2, 1, tzinfo=timezone.utc))

        assert summary.total_income == Decimal("40")


class TestOrderSummary:

    def test_figures(self, make_order, ledger, ledger_selector, admin):
        order = make_order(total_price="1000")
        ledger.add_payment(order.id, admin, amount="600")
        ledger.add_employee_payment(order.id, admin, amount="350")

        summary = ledger_selector.order_summary(order.id)

        assert summary.paid_by_client == Decimal("600")
        assert summary.employee_paid == Decimal("350")
        assert summary.payout_ceiling == Decimal("850.00")
        assert summary.remaining_payout == Decimal("500.00")
        assert summary.is_paid is False

    def test_ceiling_rounds_down_to_cents(self, make_order, ledger_selector):
        order = make_order(total_price="99.99")

        assert ledger_selector.order_summary(order.id).payout_ceiling == Decimal("84.99")

    def test_missing_order(self, ledger_selector):
        with pytest.raises(OrderNotFoundError):
            ledger_selector.order_summary(uuid4())

    def test_transactions_by_category(self, make_order, ledger, ledger_selector, admin):
        order = make_order()
        ledger.update_order(order.id, {"is_paid": True}, admin)
        ledger.create_transaction(admin, type="EXPENSE", amount="10", category="Такси")

        assert len(ledger_selector.transactions(category="Такси")) == 1
        assert len(ledger_selector.transactions(category="Счет оплачен")) == 1


class TestPayoutSelector:

    def test_unpaid_by_employee(
        self, make_notification, record_sends, payout_selector, admin, alex, maria
    ):
        a = make_notification(quantity=5)
        record_sends(a.id, alex, count=3)
        b = make_notification(actor=admin, price="1000", author="Alex", employee_rate="60")
        record_sends(b.id, alex, count=2)
        record_sends(b.id, maria)

        unpaid = payout_selector.unpaid_by_employee()

        assert list(unpaid) == ["Alex", "Maria"]
        assert unpaid["Alex"] == UnpaidWork(count=5, amount=Decimal("276"))
        assert unpaid["Maria"] == UnpaidWork(count=1, amount=Decimal("60"))

    def test_employee_stats_after_payout(
        self, make_notification, record_sends, reconciler, payout_selector, admin, alex
    ):
        b = make_notification(actor=admin, price="1000", author="Alex", employee_rate="60")
        record_sends(b.id, alex, count=2)
        reconciler.pay_all_for_employee("Alex", admin)
        record_sends(b.id, alex)

        stats = payout_selector.employee_stats("Alex")

        assert stats.sends_total == 3
        assert stats.sends_paid == 2
        assert stats.earned == Decimal("180")
        assert stats.paid == Decimal("120")
        assert stats.outstanding == Decimal("60")

    def test_missing_notification(self, payout_selector):
        with pytest.raises(NotificationNotFoundError):
            payout_selector.get_notification(uuid4())
