# backend/app/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/cashdesk.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///cashdesk.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # bcrypt cost factor for supervisor PIN hashes
    PIN_HASH_ROUNDS = int(os.environ.get("PIN_HASH_ROUNDS", "12"))

    # Minutes after a window's end before a close counts as after-hours
    AFTER_HOURS_GRACE_MINUTES = int(os.environ.get("AFTER_HOURS_GRACE_MINUTES", "0"))

    DEFAULT_BRANCH_TIMEZONE = os.environ.get("DEFAULT_BRANCH_TIMEZONE", "UTC")

    # Attempts for the open/close retry-on-conflict loop
    SESSION_RETRY_ATTEMPTS = int(os.environ.get("SESSION_RETRY_ATTEMPTS", "3"))
