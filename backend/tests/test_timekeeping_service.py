"""
Timekeeping write path tests: stamps, corrections, edits, deletes, day info.
"""

from datetime import date, datetime

import pytest

from worktime.models import AuditEvent, DailySummary, MonthlyBalance, TimeEntry
from worktime.services import timekeeping_service
from worktime.validation import InvalidInput, NotFound

MONDAY = date(2026, 3, 2)
TUESDAY = date(2026, 3, 3)
LATER = datetime(2026, 3, 10, 12, 0)


def at(day: date, hm: str) -> datetime:
    return datetime.fromisoformat(f"{day.isoformat()}T{hm}")


def _summary(db_session, emp, day):
    return db_session.query(DailySummary).filter_by(employee_id=emp.id, date=day).one()


def _full_day(add_entries, emp, day):
    return add_entries(
        emp,
        ("clock_in", at(day, "08:00")),
        ("break_start", at(day, "12:00")),
        ("break_end", at(day, "12:30")),
        ("clock_out", at(day, "16:30")),
    )


class TestStamp:
    def test_clock_in_then_out(self, db_session, employee):
        first = timekeeping_service.stamp(employee_id=employee.id, entry_type="clock_in", now=at(MONDAY, "08:00"))
        assert first.entry.source == "web"
        assert first.entry.is_correction is False
        assert first.validation.valid
        assert first.validation.state == "present"

        second = timekeeping_service.stamp(employee_id=employee.id, entry_type="clock_out", now=at(MONDAY, "12:00"))
        summary = second.summaries[0]
        assert summary.worked_minutes == 240
        assert summary.overtime_minutes == -240
        assert summary.status == "complete"

        events = db_session.query(AuditEvent).filter_by(employee_id=employee.id, event_type="entry.web").count()
        assert events == 2

    def test_out_of_sequence_stamp_is_stored_with_warning(self, db_session, employee):
        result = timekeeping_service.stamp(employee_id=employee.id, entry_type="clock_out", now=at(MONDAY, "08:00"))

        assert result.entry.id is not None
        assert not result.validation.valid
        assert result.to_dict()["warnings"][0]["entry_id"] == result.entry.id

        summary = _summary(db_session, employee, MONDAY)
        assert summary.needs_review is True
        assert summary.review_note.startswith("Sequence warning:")

    def test_unknown_entry_type_is_rejected(self, db_session, employee):
        with pytest.raises(InvalidInput) as exc:
            timekeeping_service.stamp(employee_id=employee.id, entry_type="lunch", now=at(MONDAY, "08:00"))
        assert exc.value.field == "entry_type"
        assert db_session.query(TimeEntry).count() == 0

    def test_tracking_disabled_is_rejected(self, db_session, supervisor):
        with pytest.raises(InvalidInput):
            timekeeping_service.stamp(employee_id=supervisor.id, entry_type="clock_in", now=at(MONDAY, "08:00"))
        assert db_session.query(TimeEntry).count() == 0

    def test_unknown_employee(self, db_session):
        with pytest.raises(NotFound):
            timekeeping_service.stamp(employee_id=999, entry_type="clock_in", now=at(MONDAY, "08:00"))

    def test_clock_in_auto_completes_forgotten_day(self, db_session, employee, add_entries):
        add_entries(employee, ("clock_in", at(MONDAY, "08:00")))

        result = timekeeping_service.stamp(employee_id=employee.id, entry_type="clock_in", now=at(TUESDAY, "08:00"))

        assert len(result.notices) == 1
        assert result.notices[0].startswith("2026-03-02:")
        monday = _summary(db_session, employee, MONDAY)
        assert monday.worked_minutes == 959
        assert monday.needs_review is True
        assert db_session.query(AuditEvent).filter_by(event_type="entry.auto_completed").count() == 1

    def test_stamp_updates_ledger(self, db_session, employee):
        timekeeping_service.stamp(employee_id=employee.id, entry_type="clock_in", now=at(MONDAY, "08:00"))
        timekeeping_service.stamp(employee_id=employee.id, entry_type="clock_out", now=at(MONDAY, "17:00"))

        row = db_session.query(MonthlyBalance).filter_by(employee_id=employee.id, year=2026, month=3).one()
        assert row.overtime_minutes == 60
        assert row.balance_minutes == 60


class TestSelfCorrection:
    def test_adds_entry_and_always_needs_review(self, db_session, employee, add_entries):
        add_entries(employee, ("clock_in", at(MONDAY, "08:00")))

        result = timekeeping_service.submit_self_correction(
            employee_id=employee.id,
            entry_type="clock_out",
            timestamp="2026-03-02T16:30:00Z",
            reason="forgot to clock out",
            now=at(TUESDAY, "07:30"),
        )

        assert result.entry.source == "self_correction"
        assert result.entry.is_correction is True
        assert result.entry.corrected_by == employee.id
        summary = _summary(db_session, employee, MONDAY)
        assert summary.worked_minutes == 510
        assert summary.needs_review is True
        assert 'Self-correction "Clock out" at 16:30: forgot to clock out' in summary.review_note

    def test_outside_window_is_rejected(self, db_session, employee):
        with pytest.raises(InvalidInput) as exc:
            timekeeping_service.submit_self_correction(
                employee_id=employee.id,
                entry_type="clock_in",
                timestamp="2026-03-02T08:00:00Z",
                reason="forgot to clock in",
                now=datetime(2026, 3, 5, 9, 0),
            )
        assert exc.value.field == "timestamp"
        assert db_session.query(TimeEntry).count() == 0

    def test_future_timestamp_is_rejected(self, db_session, employee):
        with pytest.raises(InvalidInput):
            timekeeping_service.submit_self_correction(
                employee_id=employee.id,
                entry_type="clock_out",
                timestamp="2026-03-02T18:00:00Z",
                reason="leaving later",
                now=at(MONDAY, "12:00"),
            )

    def test_reason_is_required(self, db_session, employee):
        with pytest.raises(InvalidInput) as exc:
            timekeeping_service.submit_self_correction(
                employee_id=employee.id,
                entry_type="clock_in",
                timestamp="2026-03-02T08:00:00Z",
                reason=" x ",
                now=at(MONDAY, "12:00"),
            )
        assert exc.value.field == "reason"


class TestAdminCorrection:
    def test_clean_correction_does_not_need_review(self, db_session, employee, supervisor, add_entries):
        add_entries(employee, ("clock_in", at(MONDAY, "08:00")))

        result = timekeeping_service.admin_correction(
            employee_id=employee.id,
            entry_type="clock_out",
            timestamp=at(MONDAY, "16:30"),
            reason="terminal was offline",
            actor_id=supervisor.id,
            now=LATER,
        )

        assert result.entry.source == "admin_correction"
        assert result.entry.corrected_by == supervisor.id
        summary = _summary(db_session, employee, MONDAY)
        assert summary.status == "complete"
        assert summary.needs_review is False

    def test_correction_on_older_day_is_allowed(self, db_session, employee, supervisor):
        result = timekeeping_service.admin_correction(
            employee_id=employee.id,
            entry_type="clock_in",
            timestamp=datetime(2026, 1, 5, 8, 0),
            reason="paper timesheet",
            actor_id=supervisor.id,
            now=LATER,
        )
        assert result.entry.id is not None


class TestEditEntry:
    def test_first_edit_keeps_original_values(self, db_session, employee, supervisor, add_entries):
        rows = add_entries(employee, ("clock_in", at(MONDAY, "08:00")), ("clock_out", at(MONDAY, "16:00")))
        entry_id = rows[1].id

        timekeeping_service.edit_entry(
            entry_id=entry_id, timestamp=at(MONDAY, "16:30"), reason="left later", actor_id=supervisor.id, now=LATER,
        )
        timekeeping_service.edit_entry(
            entry_id=entry_id, timestamp=at(MONDAY, "17:00"), reason="left even later", actor_id=supervisor.id, now=LATER,
        )

        entry = db_session.get(TimeEntry, entry_id)
        assert entry.timestamp == at(MONDAY, "17:00")
        assert entry.original_timestamp == at(MONDAY, "16:00")
        assert entry.original_entry_type == "clock_out"
        assert entry.correction_reason == "left even later"
        assert _summary(db_session, employee, MONDAY).worked_minutes == 540

    def test_edit_type_fixes_sequence(self, db_session, employee, supervisor, add_entries):
        rows = add_entries(employee, ("clock_in", at(MONDAY, "08:00")), ("clock_in", at(MONDAY, "16:30")))

        result = timekeeping_service.edit_entry(
            entry_id=rows[1].id, entry_type="clock_out", reason="wrong button", actor_id=supervisor.id, now=LATER,
        )

        assert result.validation.valid
        assert result.summaries[0].worked_minutes == 510

    def test_move_across_midnight_reconciles_both_days(self, db_session, employee, supervisor, add_entries):
        _full_day(add_entries, employee, MONDAY)
        _full_day(add_entries, employee, TUESDAY)
        stray = add_entries(employee, ("clock_out", at(MONDAY, "23:55")))[0]
        timekeeping_service.reconcile_days(employee_id=employee.id, days=[MONDAY, TUESDAY], now=LATER)
        total_before = sum(_summary(db_session, employee, d).worked_minutes for d in (MONDAY, TUESDAY))

        result = timekeeping_service.edit_entry(
            entry_id=stray.id,
            timestamp=at(TUESDAY, "00:05"),
            reason="belongs to the next day",
            actor_id=supervisor.id,
            now=LATER,
        )

        assert sorted(s.date for s in result.summaries) == [MONDAY, TUESDAY]
        monday = _summary(db_session, employee, MONDAY)
        tuesday = _summary(db_session, employee, TUESDAY)
        assert monday.warnings is None
        assert len(tuesday.warnings) == 1
        assert tuesday.needs_review is True
        assert monday.worked_minutes + tuesday.worked_minutes == total_before == 960

    def test_moving_closing_entry_over_midnight_keeps_the_span(self, db_session, employee, supervisor, add_entries):
        rows = add_entries(
            employee,
            ("clock_in", at(MONDAY, "22:00")),
            ("clock_out", at(MONDAY, "23:50")),
        )
        timekeeping_service.reconcile_days(employee_id=employee.id, days=[MONDAY], now=LATER)
        assert _summary(db_session, employee, MONDAY).worked_minutes == 110

        timekeeping_service.edit_entry(
            entry_id=rows[1].id,
            timestamp=at(TUESDAY, "00:30"),
            reason="left after midnight",
            actor_id=supervisor.id,
            now=LATER,
        )

        monday = _summary(db_session, employee, MONDAY)
        tuesday = _summary(db_session, employee, TUESDAY)
        assert monday.worked_minutes == 120
        assert tuesday.worked_minutes == 30
        # 22:00 to 00:30, nothing synthesized on either side
        assert monday.worked_minutes + tuesday.worked_minutes == 150
        assert monday.has_missing_entries is False
        assert db_session.query(TimeEntry).filter_by(source="auto_complete").count() == 0

    def test_move_flags_warnings_left_on_source_day(self, db_session, employee, supervisor, add_entries):
        rows = _full_day(add_entries, employee, MONDAY)
        _full_day(add_entries, employee, TUESDAY)
        timekeeping_service.reconcile_days(employee_id=employee.id, days=[MONDAY, TUESDAY], now=LATER)
        assert _summary(db_session, employee, MONDAY).needs_review is False

        timekeeping_service.edit_entry(
            entry_id=rows[2].id,
            timestamp=at(TUESDAY, "12:30"),
            reason="booked on the wrong day",
            actor_id=supervisor.id,
            now=LATER,
        )

        monday = _summary(db_session, employee, MONDAY)
        assert len(monday.warnings) == 1
        assert monday.needs_review is True
        assert '"Clock out" not allowed' in monday.review_note
        assert _summary(db_session, employee, TUESDAY).needs_review is True

    def test_preview_cross_day_reports_both_days(self, db_session, employee, add_entries):
        _full_day(add_entries, employee, MONDAY)
        stray = add_entries(employee, ("clock_out", at(MONDAY, "23:55")))[0]

        preview = timekeeping_service.preview_edit(entry_id=stray.id, timestamp="2026-03-03T00:05:00Z")

        assert preview["date"] == "2026-03-03"
        assert preview["validation"]["valid"] is False
        assert preview["source_date"] == "2026-03-02"
        assert preview["source_validation"]["valid"] is True
        assert db_session.get(TimeEntry, stray.id).timestamp == at(MONDAY, "23:55")

    def test_edit_requires_a_change(self, db_session, employee, add_entries):
        rows = add_entries(employee, ("clock_in", at(MONDAY, "08:00")))
        with pytest.raises(InvalidInput):
            timekeeping_service.edit_entry(entry_id=rows[0].id, reason="nothing", now=LATER)


class TestDelete:
    def test_delete_requires_confirm(self, db_session, employee, add_entries):
        rows = add_entries(employee, ("clock_in", at(MONDAY, "08:00")))

        with pytest.raises(InvalidInput) as exc:
            timekeeping_service.delete_entry(entry_id=rows[0].id, confirm=False, now=LATER)
        assert exc.value.field == "confirm"
        assert db_session.get(TimeEntry, rows[0].id).is_deleted is False

    def test_soft_delete_reconciles_day(self, db_session, employee, supervisor, add_entries):
        rows = _full_day(add_entries, employee, MONDAY)
        duplicate = add_entries(employee, ("clock_out", at(MONDAY, "17:00")))[0]
        timekeeping_service.reconcile_days(employee_id=employee.id, days=[MONDAY], now=LATER)
        assert _summary(db_session, employee, MONDAY).warnings

        timekeeping_service.delete_entry(
            entry_id=duplicate.id, confirm=True, reason="duplicate", actor_id=supervisor.id, now=LATER,
        )

        entry = db_session.get(TimeEntry, duplicate.id)
        assert entry.is_deleted is True
        assert entry.deleted_by == supervisor.id
        summary = _summary(db_session, employee, MONDAY)
        assert summary.warnings is None
        assert summary.worked_minutes == 480
        assert len(rows) == 4

    def test_delete_that_breaks_sequence_needs_review(self, db_session, employee, supervisor, add_entries):
        rows = _full_day(add_entries, employee, MONDAY)
        timekeeping_service.reconcile_days(employee_id=employee.id, days=[MONDAY], now=LATER)
        assert _summary(db_session, employee, MONDAY).needs_review is False

        result = timekeeping_service.delete_entry(
            entry_id=rows[1].id, confirm=True, reason="mistyped", actor_id=supervisor.id, now=LATER,
        )

        assert len(result.validation.warnings) == 1
        assert result.validation.warnings[0].entry_id == rows[2].id
        summary = _summary(db_session, employee, MONDAY)
        assert summary.needs_review is True
        assert '"Break end" not allowed' in summary.review_note

    def test_deleted_entry_is_not_found_again(self, db_session, employee, add_entries):
        rows = add_entries(employee, ("clock_in", at(MONDAY, "08:00")))
        timekeeping_service.delete_entry(entry_id=rows[0].id, confirm=True, now=LATER)
        with pytest.raises(NotFound):
            timekeeping_service.delete_entry(entry_id=rows[0].id, confirm=True, now=LATER)

    def test_reset_day(self, db_session, employee, supervisor, add_entries):
        _full_day(add_entries, employee, MONDAY)

        result = timekeeping_service.reset_day(
            employee_id=employee.id, day=MONDAY, reason="test data", confirm=True, actor_id=supervisor.id, now=LATER,
        )

        assert result.entry is None
        summary = result.summaries[0]
        assert summary.status == "absent"
        assert summary.missing_entry_types == ["no_entries"]
        assert db_session.query(TimeEntry).filter_by(is_deleted=False).count() == 0


class TestDayInfo:
    def test_override_moves_overtime_and_ledger(self, db_session, employee, supervisor, add_entries):
        _full_day(add_entries, employee, MONDAY)
        timekeeping_service.reconcile_days(employee_id=employee.id, days=[MONDAY], now=LATER)

        summary = timekeeping_service.update_day_info(
            employee_id=employee.id, day=MONDAY, target_override_minutes=420, actor_id=supervisor.id, now=LATER,
        )

        assert summary.overtime_minutes == 60
        row = db_session.query(MonthlyBalance).filter_by(employee_id=employee.id, year=2026, month=3).one()
        assert row.overtime_minutes == 60

    def test_clearing_review_clears_note(self, db_session, employee, add_entries):
        add_entries(employee, ("clock_in", at(MONDAY, "08:00")))
        timekeeping_service.reconcile_days(employee_id=employee.id, days=[MONDAY], now=LATER)
        assert _summary(db_session, employee, MONDAY).needs_review is True

        summary = timekeeping_service.update_day_info(
            employee_id=employee.id, day=MONDAY, needs_review=False, note="checked with employee", now=LATER,
        )

        assert summary.needs_review is False
        assert summary.review_note is None
        assert summary.note == "checked with employee"

    def test_override_out_of_range(self, db_session, employee):
        with pytest.raises(InvalidInput):
            timekeeping_service.update_day_info(employee_id=employee.id, day=MONDAY, target_override_minutes=2000)


class TestSweep:
    def test_sweep_auto_completes_open_days(self, db_session, employee, clock, add_entries):
        last_monday = date(2026, 3, 9)
        add_entries(employee, ("clock_in", at(last_monday, "08:00")))

        swept = timekeeping_service.sweep_stale_days()

        assert swept == {employee.id: [last_monday]}
        assert _summary(db_session, employee, last_monday).last_clock_out == at(last_monday, "23:59")
        assert timekeeping_service.sweep_stale_days() == {}
