"""
Overtime ledger tests: recompute, cascade, adjustments, payouts, resume.

Daily summaries are written directly so the ledger is tested in isolation
from the reconciler. 'Now' is 2026-03-10, so cascades end in March 2026.
"""

from datetime import date, datetime

import pytest

from worktime.models import AuditEvent, DailySummary, MonthlyBalance, PendingRecompute
from worktime.services import balance_service, settings_service
from worktime.services.balance_service import InsufficientBalance
from worktime.validation import InvalidInput

NOW = datetime(2026, 3, 10, 12, 0)


def _day(db_session, emp, d: date, overtime: int):
    db_session.add(DailySummary(
        employee_id=emp.id,
        date=d,
        target_minutes=480,
        worked_minutes=480 + overtime,
        overtime_minutes=overtime,
        status="complete",
    ))
    db_session.commit()


def _ledger(db_session, emp) -> dict:
    rows = (
        db_session.query(MonthlyBalance)
        .filter_by(employee_id=emp.id)
        .order_by(MonthlyBalance.year, MonthlyBalance.month)
        .all()
    )
    return {(r.year, r.month): r.to_dict() for r in rows}


@pytest.fixture
def quarter(db_session, employee):
    """+30 in January, +45 in February, -15 in March, ledger computed."""
    _day(db_session, employee, date(2026, 1, 5), 30)
    _day(db_session, employee, date(2026, 2, 2), 45)
    _day(db_session, employee, date(2026, 3, 2), -15)
    balance_service.recompute_month(employee_id=employee.id, year=2026, month=1, now=NOW)
    return employee


class TestRecompute:
    def test_carryover_chain(self, db_session, quarter):
        ledger = _ledger(db_session, quarter)

        assert list(ledger) == [(2026, 1), (2026, 2), (2026, 3)]
        assert ledger[(2026, 1)]["carryover_minutes"] == 0
        assert ledger[(2026, 1)]["balance_minutes"] == 30
        assert ledger[(2026, 2)]["carryover_minutes"] == 30
        assert ledger[(2026, 2)]["balance_minutes"] == 75
        assert ledger[(2026, 3)]["carryover_minutes"] == 75
        assert ledger[(2026, 3)]["balance_minutes"] == 60
        assert ledger[(2026, 3)]["target_minutes"] == 480
        assert db_session.query(PendingRecompute).count() == 0

    def test_recompute_is_idempotent(self, db_session, quarter):
        before = _ledger(db_session, quarter)

        balance_service.recompute_month(employee_id=quarter.id, year=2026, month=1, now=NOW)
        balance_service.recompute_month(employee_id=quarter.id, year=2026, month=2, now=NOW)

        assert _ledger(db_session, quarter) == before

    def test_first_month_carries_initial_balance(self, db_session, employee):
        employee.initial_balance_minutes = 120
        db_session.commit()
        _day(db_session, employee, date(2026, 3, 2), 10)

        row = balance_service.recompute_month(employee_id=employee.id, year=2026, month=3, now=NOW)

        assert row.carryover_minutes == 120
        assert row.balance_minutes == 130

    def test_current_balance_fills_gap_months(self, db_session, employee):
        _day(db_session, employee, date(2026, 1, 5), 30)
        balance_service.recompute_month(employee_id=employee.id, year=2026, month=1, now=datetime(2026, 1, 20))
        assert list(_ledger(db_session, employee)) == [(2026, 1)]

        row = balance_service.get_current_balance(employee_id=employee.id, now=NOW)

        assert (row.year, row.month) == (2026, 3)
        assert row.carryover_minutes == 30
        assert list(_ledger(db_session, employee)) == [(2026, 1), (2026, 2), (2026, 3)]

    def test_invalid_month(self, db_session, employee):
        with pytest.raises(InvalidInput):
            balance_service.recompute_month(employee_id=employee.id, year=2026, month=13, now=NOW)


class TestAdjustment:
    def test_adjustment_cascades_forward_only(self, db_session, quarter, supervisor):
        before = _ledger(db_session, quarter)

        row = balance_service.record_adjustment(
            employee_id=quarter.id,
            year=2026,
            month=2,
            minutes=60,
            reason="trade fair weekend",
            actor_id=supervisor.id,
            now=NOW,
        )

        after = _ledger(db_session, quarter)
        assert after[(2026, 1)] == before[(2026, 1)]
        assert row.adjustment_minutes == 60
        assert row.adjustment_log == "2026-03-10: trade fair weekend (+60 min)"
        assert after[(2026, 2)]["balance_minutes"] == before[(2026, 2)]["balance_minutes"] + 60
        assert after[(2026, 3)]["carryover_minutes"] == before[(2026, 3)]["carryover_minutes"] + 60
        assert after[(2026, 3)]["balance_minutes"] == before[(2026, 3)]["balance_minutes"] + 60

        event = db_session.query(AuditEvent).filter_by(event_type="balance.adjusted").one()
        assert event.actor_id == supervisor.id
        assert event.note == "trade fair weekend"

    def test_month_after_current_is_rejected(self, db_session, quarter):
        before = _ledger(db_session, quarter)

        with pytest.raises(InvalidInput) as exc:
            balance_service.record_adjustment(
                employee_id=quarter.id, year=2026, month=5, minutes=120, reason="booked ahead", now=NOW,
            )
        assert exc.value.field == "month"
        with pytest.raises(InvalidInput):
            balance_service.record_payout(employee_id=quarter.id, year=2027, month=1, minutes=10, now=NOW)
        with pytest.raises(InvalidInput):
            balance_service.recompute_month(employee_id=quarter.id, year=2026, month=4, now=NOW)

        assert _ledger(db_session, quarter) == before

    def test_adjustment_log_appends(self, db_session, quarter):
        balance_service.record_adjustment(
            employee_id=quarter.id, year=2026, month=3, minutes=15, reason="first", now=NOW,
        )
        row = balance_service.record_adjustment(
            employee_id=quarter.id, year=2026, month=3, minutes=-20, reason="second", now=NOW,
        )
        assert row.adjustment_minutes == -5
        assert row.adjustment_log.splitlines() == [
            "2026-03-10: first (+15 min)",
            "2026-03-10: second (-20 min)",
        ]

    def test_zero_minutes_rejected(self, db_session, quarter):
        with pytest.raises(InvalidInput) as exc:
            balance_service.record_adjustment(
                employee_id=quarter.id, year=2026, month=3, minutes=0, reason="nothing", now=NOW,
            )
        assert exc.value.field == "minutes"


class TestPayout:
    def test_payout_reduces_balance_and_cascades(self, db_session, quarter, supervisor):
        row = balance_service.record_payout(
            employee_id=quarter.id, year=2026, month=2, minutes=30, actor_id=supervisor.id, now=NOW,
        )

        assert row.payout_minutes == 30
        assert row.payout_date == date(2026, 3, 10)
        assert row.balance_minutes == 45
        ledger = _ledger(db_session, quarter)
        assert ledger[(2026, 3)]["carryover_minutes"] == 45
        assert ledger[(2026, 3)]["balance_minutes"] == 30

    def test_insufficient_balance_leaves_ledger_unchanged(self, db_session, quarter):
        before = _ledger(db_session, quarter)

        with pytest.raises(InsufficientBalance) as exc:
            balance_service.record_payout(employee_id=quarter.id, year=2026, month=3, minutes=61, now=NOW)

        assert exc.value.requested == 61
        assert exc.value.available == 60
        assert _ledger(db_session, quarter) == before
        assert db_session.query(AuditEvent).filter_by(event_type="balance.payout").count() == 0

    def test_payout_checks_current_balance(self, db_session, quarter):
        # A day booked after the last recompute must count before the check
        _day(db_session, quarter, date(2026, 3, 3), 40)

        row = balance_service.record_payout(employee_id=quarter.id, year=2026, month=3, minutes=100, now=NOW)

        assert row.balance_minutes == 0

    def test_payout_in_past_month_cannot_overdraw_later_months(self, db_session, quarter):
        # February holds 75, but March only 60 after its own -15
        with pytest.raises(InsufficientBalance) as exc:
            balance_service.record_payout(employee_id=quarter.id, year=2026, month=2, minutes=70, now=NOW)

        assert exc.value.available == 60
        assert _ledger(db_session, quarter)[(2026, 3)]["balance_minutes"] == 60

    def test_non_positive_payout_rejected(self, db_session, quarter):
        with pytest.raises(InvalidInput):
            balance_service.record_payout(employee_id=quarter.id, year=2026, month=3, minutes=0, now=NOW)


class TestCascadeResume:
    def test_interrupted_cascade_converges(self, db_session, quarter):
        summary = db_session.query(DailySummary).filter_by(employee_id=quarter.id, date=date(2026, 1, 5)).one()
        summary.overtime_minutes = 90
        db_session.commit()

        # First step of a cascade from January, then the process dies
        balance_service.enqueue_cascade(quarter.id, 2026, 1)
        balance_service.recompute_month_row(quarter, 2026, 1)
        cursor = db_session.query(PendingRecompute).filter_by(employee_id=quarter.id).one()
        cursor.year, cursor.month = 2026, 2
        db_session.commit()
        assert _ledger(db_session, quarter)[(2026, 2)]["carryover_minutes"] == 30

        processed = balance_service.process_pending_recomputes(now=NOW)

        assert processed == {quarter.id: 2}
        assert db_session.query(PendingRecompute).count() == 0
        resumed = _ledger(db_session, quarter)
        assert resumed[(2026, 2)]["carryover_minutes"] == 90
        assert resumed[(2026, 3)]["balance_minutes"] == 120

        balance_service.recompute_month(employee_id=quarter.id, year=2026, month=1, now=NOW)
        assert _ledger(db_session, quarter) == resumed

    def test_cursor_only_moves_back(self, db_session, employee):
        balance_service.enqueue_cascade(employee.id, 2026, 2)
        balance_service.enqueue_cascade(employee.id, 2026, 3)
        item = balance_service.enqueue_cascade(employee.id, 2026, 1)
        db_session.commit()
        assert (item.year, item.month) == (2026, 1)
        assert db_session.query(PendingRecompute).count() == 1

    def test_nothing_pending(self, db_session, employee):
        assert balance_service.cascade_employee(employee.id, now=NOW) == 0
        assert balance_service.process_pending_recomputes(now=NOW) == {}


class TestBalanceReads:
    def test_get_balance_flags(self, db_session, quarter):
        settings_service.set_setting(key="overtime_warning_minutes", value=50)
        settings_service.set_setting(key="overtime_limit_minutes", value=55)
        settings_service.set_setting(key="overtime_limit_enabled", value=True)

        data = balance_service.get_balance(employee_id=quarter.id, now=NOW)

        assert data["current_balance_minutes"] == 60
        assert data["year"] == 2026
        assert [m["month"] for m in data["months"]] == [1, 2, 3]
        assert data["overtime_warning"] is True
        assert data["overtime_limit_exceeded"] is True

    def test_get_all_balances_is_a_pure_read(self, db_session, quarter, supervisor):
        rows = balance_service.get_all_balances(year=2026, month=4)

        assert [r["employee_id"] for r in rows] == [quarter.id]
        assert rows[0]["balance"] is None
        assert db_session.query(MonthlyBalance).filter_by(month=4).count() == 0
