# Overview: Per-employee serialization and retry helpers for time-tracking writes.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Employee
from ..validation import NotFound

"""
Writer discipline

All state is partitioned by employee, so there is no global lock. Within one
employee, the sequence read entries -> validate/reconcile -> write summary ->
recompute ledger must not interleave with another writer of the same
employee. Two layers enforce that:

- an in-process re-entrant lock per employee (bounded wait, then
  ConcurrentModification), and
- SELECT ... FOR UPDATE on the employee row plus an optimistic version_id
  bump, so writers in other processes conflict on commit (StaleDataError)
  and are retried.
"""


class ConcurrentModification(RuntimeError):
    """Another writer holds the section for this employee; retry after it releases."""

    def __init__(self, employee_id: int):
        super().__init__(f"Time data of employee {employee_id} is being modified, please retry")
        self.employee_id = employee_id


_section_locks: dict[int, threading.RLock] = {}
_section_locks_guard = threading.Lock()


def _section_lock(employee_id: int) -> threading.RLock:
    with _section_locks_guard:
        lock = _section_locks.get(employee_id)
        if lock is None:
            lock = threading.RLock()
            _section_locks[employee_id] = lock
        return lock


@contextmanager
def employee_section(employee_id: int, *, timeout: float | None = None):
    """
    Exclusive section for one employee. Re-entrant within a thread.

    Blocks up to `timeout` seconds (EMPLOYEE_LOCK_TIMEOUT_SECONDS by default);
    raises ConcurrentModification if the section is still held after that.
    """
    if timeout is None:
        timeout = float(current_app.config.get("EMPLOYEE_LOCK_TIMEOUT_SECONDS", 5))
    lock = _section_lock(employee_id)
    if not lock.acquire(timeout=timeout):
        raise ConcurrentModification(employee_id)
    try:
        yield
    finally:
        lock.release()


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def lock_employee(employee_id: int) -> Employee:
    """
    Load the employee row FOR UPDATE and mark it dirty so the flush bumps
    version_id. A concurrent writer that committed first makes this
    transaction fail with StaleDataError.
    """
    employee = lock_for_update(db.session.query(Employee).filter_by(id=employee_id)).first()
    if not employee:
        raise NotFound(f"Employee {employee_id} not found", field="employee_id")
    flag_modified(employee, "name")
    return employee


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Any other exception rolls the session
    back and propagates unchanged.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc


def run_in_employee_section(employee_id: int, func, *, attempts: int = 3):
    """Run `func` inside the employee's exclusive section, with retry and rollback."""
    with employee_section(employee_id):
        return run_with_retry(func, attempts=attempts)
