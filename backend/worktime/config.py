# backend/worktime/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/worktime.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///worktime.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Time zone used for employees without an explicit one (IANA name)
    DEFAULT_TIMEZONE = os.environ.get("WORKTIME_DEFAULT_TIMEZONE", "Europe/Berlin")

    # Max seconds a writer waits for another writer of the same employee
    EMPLOYEE_LOCK_TIMEOUT_SECONDS = float(os.environ.get("WORKTIME_LOCK_TIMEOUT_SECONDS", "5"))

    # Optional zero-arg callable returning UTC-naive "now" (tests inject a fixed clock)
    CLOCK = None
