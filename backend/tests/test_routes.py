"""
HTTP tests for the time-tracking API.

Verifies:
- Requests without a known actor return 401
- Service errors map to 400/404/409 (Retry-After when another writer is busy)
- Happy paths return the serialized results
"""

import threading
from datetime import datetime

import pytest

from worktime.models import MonthlyBalance, TimeEntry
from worktime.services import concurrency


def actor_headers(emp) -> dict:
    """Helper to create the gateway header naming the calling employee."""
    return {'X-Actor-Id': str(emp.id)}


# =============================================================================
# ACTOR RESOLUTION - 401
# =============================================================================


class TestActorRequired:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("POST", "/api/time-tracking/entries/stamp"),
            ("GET", "/api/time-tracking/entries/presence"),
            ("GET", "/api/time-tracking/balances/1"),
            ("GET", "/api/time-tracking/settings"),
            ("GET", "/api/time-tracking/models"),
        ],
    )
    def test_requires_actor(self, client, db_session, method, path):
        response = client.open(path, method=method)
        assert response.status_code == 401

    def test_unknown_actor(self, client, db_session):
        response = client.get("/api/time-tracking/entries/presence", headers={"X-Actor-Id": "999"})
        assert response.status_code == 401


# =============================================================================
# ENTRIES
# =============================================================================


class TestEntryRoutes:
    def test_stamp_for_self(self, client, employee, clock):
        response = client.post(
            "/api/time-tracking/entries/stamp",
            json={"entry_type": "clock_in"},
            headers=actor_headers(employee),
        )
        assert response.status_code == 201
        body = response.get_json()
        assert body["entry"]["entry_type"] == "clock_in"
        assert body["entry"]["timestamp"] == "2026-03-10T12:00:00Z"
        assert body["validation"]["expected_next"] == ["clock_out", "break_start"]
        assert body["warnings"] == []

    def test_out_of_sequence_stamp_returns_warning(self, client, employee, clock):
        response = client.post(
            "/api/time-tracking/entries/stamp",
            json={"entry_type": "break_end"},
            headers=actor_headers(employee),
        )
        assert response.status_code == 201
        assert len(response.get_json()["warnings"]) == 1

    def test_invalid_entry_type(self, client, employee, clock):
        response = client.post(
            "/api/time-tracking/entries/stamp",
            json={"entry_type": "nap"},
            headers=actor_headers(employee),
        )
        assert response.status_code == 400
        assert response.get_json()["field"] == "entry_type"

    def test_unknown_employee(self, client, supervisor, clock):
        response = client.post(
            "/api/time-tracking/entries/stamp",
            json={"entry_type": "clock_in", "employee_id": 999},
            headers=actor_headers(supervisor),
        )
        assert response.status_code == 404

    def test_busy_employee_returns_retry_after(self, app, client, employee, clock):
        held = threading.Event()
        release = threading.Event()
        employee_id = employee.id

        def _hold():
            lock = concurrency._section_lock(employee_id)
            with lock:
                held.set()
                release.wait(5)

        holder = threading.Thread(target=_hold)
        holder.start()
        held.wait(5)
        app.config["EMPLOYEE_LOCK_TIMEOUT_SECONDS"] = 0.05
        try:
            response = client.post(
                "/api/time-tracking/entries/stamp",
                json={"entry_type": "clock_in"},
                headers=actor_headers(employee),
            )
        finally:
            app.config["EMPLOYEE_LOCK_TIMEOUT_SECONDS"] = 5
            release.set()
            holder.join()

        assert response.status_code == 409
        assert response.headers["Retry-After"] == "1"
        assert response.get_json()["retryable"] is True

    def test_admin_correction_and_edit(self, client, db_session, employee, supervisor, clock):
        created = client.post(
            "/api/time-tracking/entries/correction",
            json={
                "employee_id": employee.id,
                "entry_type": "clock_in",
                "timestamp": "2026-03-09T08:00:00Z",
                "reason": "terminal offline",
            },
            headers=actor_headers(supervisor),
        )
        assert created.status_code == 201
        entry_id = created.get_json()["entry"]["id"]

        preview = client.post(
            f"/api/time-tracking/entries/{entry_id}/preview",
            json={"entry_type": "clock_out"},
            headers=actor_headers(supervisor),
        )
        assert preview.status_code == 200
        assert preview.get_json()["validation"]["valid"] is False

        edited = client.put(
            f"/api/time-tracking/entries/{entry_id}",
            json={"timestamp": "2026-03-09T07:30:00Z", "reason": "started earlier"},
            headers=actor_headers(supervisor),
        )
        assert edited.status_code == 200
        assert edited.get_json()["entry"]["original_timestamp"] == "2026-03-09T08:00:00Z"

    def test_delete_needs_confirm(self, client, db_session, employee, supervisor, add_entries, clock):
        entry = add_entries(employee, ("clock_in", datetime(2026, 3, 9, 8, 0)))[0]
        entry_id = entry.id

        refused = client.delete(f"/api/time-tracking/entries/{entry_id}", headers=actor_headers(supervisor))
        assert refused.status_code == 400
        assert refused.get_json()["field"] == "confirm"

        deleted = client.delete(
            f"/api/time-tracking/entries/{entry_id}?confirm=true",
            headers=actor_headers(supervisor),
        )
        assert deleted.status_code == 200
        db_session.expire_all()
        assert db_session.get(TimeEntry, entry_id).is_deleted is True

    def test_list_and_validate(self, client, employee, add_entries, clock):
        add_entries(
            employee,
            ("clock_out", datetime(2026, 3, 9, 7, 0)),
            ("clock_in", datetime(2026, 3, 9, 8, 0)),
        )
        listed = client.get(
            f"/api/time-tracking/entries/employee/{employee.id}?from=2026-03-09&to=2026-03-09",
            headers=actor_headers(employee),
        )
        assert listed.get_json()["count"] == 2

        validated = client.get(
            f"/api/time-tracking/entries/employee/{employee.id}/validate?date=2026-03-09",
            headers=actor_headers(employee),
        )
        body = validated.get_json()
        assert body["valid"] is False
        assert body["state"] == "present"

    def test_presence_and_missing(self, client, employee, add_entries, clock):
        add_entries(employee, ("clock_in", datetime(2026, 3, 10, 8, 0)))

        presence = client.get("/api/time-tracking/entries/presence", headers=actor_headers(employee))
        assert presence.get_json()["employees"][0]["state"] == "present"

        missing = client.get(
            "/api/time-tracking/entries/missing?from=2026-03-09&to=2026-03-10",
            headers=actor_headers(employee),
        )
        assert missing.status_code == 200
        assert [d["date"] for d in missing.get_json()["days"]] == ["2026-03-09"]

    def test_missing_requires_range(self, client, employee, clock):
        response = client.get("/api/time-tracking/entries/missing", headers=actor_headers(employee))
        assert response.status_code == 400


# =============================================================================
# DAYS AND BALANCES
# =============================================================================


class TestDayAndBalanceRoutes:
    def test_update_day_info(self, client, employee, supervisor, clock):
        response = client.put(
            f"/api/time-tracking/daily-summary/{employee.id}/2026-03-09",
            json={"target_override_minutes": 0, "note": "sick leave"},
            headers=actor_headers(supervisor),
        )
        assert response.status_code == 200
        summary = response.get_json()["summary"]
        assert summary["effective_target_minutes"] == 0
        assert summary["overtime_minutes"] == 0
        assert summary["note"] == "sick leave"

    def test_update_day_info_needs_fields(self, client, employee, supervisor, clock):
        response = client.put(
            f"/api/time-tracking/daily-summary/{employee.id}/2026-03-09",
            json={},
            headers=actor_headers(supervisor),
        )
        assert response.status_code == 400

    def test_week_summary(self, client, employee, clock):
        response = client.get(
            f"/api/time-tracking/summaries/{employee.id}/week?date=2026-03-04",
            headers=actor_headers(employee),
        )
        assert response.status_code == 200
        assert len(response.get_json()["days"]) == 7

    def test_adjustment_and_payout(self, client, db_session, employee, supervisor, clock):
        adjusted = client.post(
            f"/api/time-tracking/balances/{employee.id}/adjustment",
            json={"year": 2026, "month": 3, "minutes": 120, "reason": "carried over from old system"},
            headers=actor_headers(supervisor),
        )
        assert adjusted.status_code == 201
        assert adjusted.get_json()["balance"]["adjustment_minutes"] == 120

        refused = client.post(
            f"/api/time-tracking/balances/{employee.id}/payout",
            json={"year": 2026, "month": 3, "minutes": 500},
            headers=actor_headers(supervisor),
        )
        assert refused.status_code == 409
        assert refused.get_json()["available_minutes"] == 120

        paid = client.post(
            f"/api/time-tracking/balances/{employee.id}/payout",
            json={"year": 2026, "month": 3, "minutes": 60, "payout_date": "2026-03-31"},
            headers=actor_headers(supervisor),
        )
        assert paid.status_code == 201
        assert paid.get_json()["balance"]["balance_minutes"] == 60
        assert paid.get_json()["balance"]["payout_date"] == "2026-03-31"

        balance = client.get(f"/api/time-tracking/balances/{employee.id}", headers=actor_headers(employee))
        assert balance.get_json()["current_balance_minutes"] == 60

        audit = client.get(f"/api/time-tracking/audit/{employee.id}", headers=actor_headers(supervisor))
        assert {e["event_type"] for e in audit.get_json()["events"]} >= {"balance.adjusted", "balance.payout"}

    def test_recalculate(self, client, db_session, employee, supervisor, clock):
        response = client.post(
            "/api/time-tracking/balances/recalculate",
            json={"year": 2026, "month": 2},
            headers=actor_headers(supervisor),
        )
        assert response.status_code == 200
        assert [(b["year"], b["month"]) for b in response.get_json()["balances"]] == [(2026, 2)]
        assert db_session.query(MonthlyBalance).filter_by(employee_id=employee.id).count() == 2

    def test_all_balances_requires_month(self, client, employee, clock):
        response = client.get("/api/time-tracking/balances?year=2026", headers=actor_headers(employee))
        assert response.status_code == 400


# =============================================================================
# TIME MODELS, SETTINGS, HEALTH
# =============================================================================


class TestModelAndSettingRoutes:
    def test_create_requires_name(self, client, supervisor):
        response = client.post(
            "/api/time-tracking/models",
            json={"monday_minutes": 240},
            headers=actor_headers(supervisor),
        )
        assert response.status_code == 400
        assert response.get_json()["field"] == "name"

    def test_create_and_delete(self, client, supervisor):
        created = client.post(
            "/api/time-tracking/models",
            json={"name": "Part time 20h", "monday_minutes": 240, "tuesday_minutes": 240},
            headers=actor_headers(supervisor),
        )
        assert created.status_code == 201
        model = created.get_json()
        assert model["weekly_minutes"] == 480
        assert model["is_default"] is False

        deleted = client.delete(f"/api/time-tracking/models/{model['id']}", headers=actor_headers(supervisor))
        assert deleted.status_code == 200

    def test_model_in_use_cannot_be_deleted(self, client, employee, supervisor):
        response = client.delete(
            f"/api/time-tracking/models/{employee.time_model_id}",
            headers=actor_headers(supervisor),
        )
        assert response.status_code == 409

    def test_out_of_range_minutes(self, client, time_model, supervisor):
        response = client.put(
            f"/api/time-tracking/models/{time_model.id}",
            json={"monday_minutes": 1500},
            headers=actor_headers(supervisor),
        )
        assert response.status_code == 400

    def test_settings_update(self, client, supervisor):
        response = client.put(
            "/api/time-tracking/settings",
            json={"key": "self_correction_window_days", "value": 3},
            headers=actor_headers(supervisor),
        )
        assert response.status_code == 200
        items = {i["key"]: i for i in response.get_json()["items"]}
        assert items["self_correction_window_days"]["value"] == "3"

        bad = client.put(
            "/api/time-tracking/settings",
            json={"values": {"auto_complete_strategy": "never"}},
            headers=actor_headers(supervisor),
        )
        assert bad.status_code == 400

    def test_health(self, client, db_session):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.get_json()["status"] == "healthy"
