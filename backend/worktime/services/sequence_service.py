# Overview: Sequence validation of one employee-day of entries (pure functions, no DB access).

"""
Sequence validator

Simulates the abstract attendance state over a chronologically sorted list
of entries:

    absent  --clock_in-->    present
    present --clock_out-->   absent
    present --break_start--> break
    break   --break_end-->   present

An entry that is not allowed in the current state produces a warning, never
an exception. The simulation then continues from the received type's nominal
post-state so later entries are still checked against a plausible
trajectory. The state a day ends in does not affect validity.

The functions accept any objects exposing id, entry_type and timestamp, so
they run unchanged against stored TimeEntry rows and against hypothetical,
edited copies (preview before commit).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Sequence

from worktime.time_utils import format_local_time

ENTRY_TYPE_LABELS = {
    "clock_in": "Clock in",
    "clock_out": "Clock out",
    "break_start": "Break start",
    "break_end": "Break end",
}

STATE_ABSENT = "absent"
STATE_PRESENT = "present"
STATE_BREAK = "break"

VALID_TRANSITIONS: dict[str, tuple[str, ...]] = {
    STATE_ABSENT: ("clock_in",),
    STATE_PRESENT: ("clock_out", "break_start"),
    STATE_BREAK: ("break_end",),
}

POST_STATE: dict[str, str] = {
    "clock_in": STATE_PRESENT,
    "clock_out": STATE_ABSENT,
    "break_start": STATE_BREAK,
    "break_end": STATE_PRESENT,
}


@dataclass(frozen=True)
class ValidationWarning:
    """A sequence-order mismatch. Data, not an exception: it never blocks a write."""
    entry_id: Optional[int]
    time: str
    entry_type: str
    message: str
    severity: str = "warning"

    def to_dict(self) -> dict:
        return {
            "entry_id": self.entry_id,
            "time": self.time,
            "entry_type": self.entry_type,
            "message": self.message,
            "severity": self.severity,
        }


@dataclass(frozen=True)
class SequenceValidation:
    valid: bool
    warnings: tuple[ValidationWarning, ...]
    state: str
    expected_next: tuple[str, ...]

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "warnings": [w.to_dict() for w in self.warnings],
            "state": self.state,
            "expected_next": list(self.expected_next),
            "expected_next_labels": [ENTRY_TYPE_LABELS[t] for t in self.expected_next],
        }


@dataclass(frozen=True)
class EntrySnapshot:
    """Detached stand-in for a TimeEntry, used for hypothetical lists."""
    id: Optional[int]
    entry_type: str
    timestamp: datetime


def _sort_key(entry) -> tuple:
    # Unsaved (id None) entries sort after stored ones with the same instant
    return (entry.timestamp, entry.id if entry.id is not None else float("inf"))


def sort_entries(entries: Iterable) -> list:
    return sorted(entries, key=_sort_key)


def snapshot(entries: Iterable) -> list[EntrySnapshot]:
    return [EntrySnapshot(id=e.id, entry_type=e.entry_type, timestamp=e.timestamp) for e in entries]


def validate(entries: Sequence, *, tz: str | None = None) -> SequenceValidation:
    """Validate a chronologically sorted entry list of one employee-day."""
    warnings: list[ValidationWarning] = []
    state = STATE_ABSENT

    for entry in entries:
        entry_type = entry.entry_type
        allowed = VALID_TRANSITIONS[state]
        if entry_type not in allowed:
            time_str = format_local_time(entry.timestamp, tz)
            label = ENTRY_TYPE_LABELS.get(entry_type, entry_type)
            expected = " or ".join(ENTRY_TYPE_LABELS[t] for t in allowed)
            warnings.append(ValidationWarning(
                entry_id=entry.id,
                time=time_str,
                entry_type=entry_type,
                message=f'{time_str}: "{label}" not allowed, expected: {expected}',
            ))
        # Continue from the received type's nominal post-state, even after a mismatch
        state = POST_STATE.get(entry_type, state)

    return SequenceValidation(
        valid=not warnings,
        warnings=tuple(warnings),
        state=state,
        expected_next=VALID_TRANSITIONS[state],
    )


def state_after(entries: Sequence) -> str:
    """Abstract state after the last entry (absent for an empty list)."""
    state = STATE_ABSENT
    for entry in entries:
        state = POST_STATE.get(entry.entry_type, state)
    return state


# -----------------------------------------------------------------------------
# Previews: run the validator against a hypothetically changed day
# -----------------------------------------------------------------------------

def preview_edit(
    entries: Sequence,
    entry_id: int,
    *,
    new_type: str | None = None,
    new_timestamp: datetime | None = None,
    tz: str | None = None,
) -> SequenceValidation:
    """
    Validate the day as it would look after editing one entry.

    `entries` should be the target day's list. An entry that is moved in from
    another day is not part of that list; pass it in explicitly (the caller
    includes it) and it is substituted like any other.
    """
    changed = []
    for e in snapshot(entries):
        if e.id == entry_id:
            e = EntrySnapshot(
                id=e.id,
                entry_type=new_type or e.entry_type,
                timestamp=new_timestamp or e.timestamp,
            )
        changed.append(e)
    return validate(sort_entries(changed), tz=tz)


def preview_insert(entries: Sequence, entry_type: str, timestamp: datetime, *, tz: str | None = None) -> SequenceValidation:
    changed = snapshot(entries) + [EntrySnapshot(id=None, entry_type=entry_type, timestamp=timestamp)]
    return validate(sort_entries(changed), tz=tz)


def preview_delete(entries: Sequence, entry_id: int, *, tz: str | None = None) -> SequenceValidation:
    return validate(sort_entries(e for e in snapshot(entries) if e.id != entry_id), tz=tz)
