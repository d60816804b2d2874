from .employees import Employee, TimeModel
from .timekeeping import TimeEntry, DailySummary
from .balances import MonthlyBalance, PendingRecompute
from .calendar import Holiday
from .settings import TimeSetting
from .audit import AuditEvent

__all__ = [
    'Employee', 'TimeModel',
    'TimeEntry', 'DailySummary',
    'MonthlyBalance', 'PendingRecompute',
    'Holiday',
    'TimeSetting',
    'AuditEvent',
]
