# backend/merchant_dash/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/merchant_dash.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///merchant_dash.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # IANA zone used for "today" boundaries; empty means the host's local zone
    DASHBOARD_TIMEZONE = os.environ.get("DASHBOARD_TIMEZONE", "")

    # Bounded wait for a change-feed confirmation before trusting the write response
    CONFIRMATION_TIMEOUT_SECONDS = float(os.environ.get("CONFIRMATION_TIMEOUT_SECONDS", "3"))

    # Feed resubscription policy
    FEED_RETRY_ATTEMPTS = int(os.environ.get("FEED_RETRY_ATTEMPTS", "5"))
    FEED_RETRY_BACKOFF_SECONDS = float(os.environ.get("FEED_RETRY_BACKOFF_SECONDS", "0.5"))
    FEED_RETRY_MAX_BACKOFF_SECONDS = float(os.environ.get("FEED_RETRY_MAX_BACKOFF_SECONDS", "10"))

    NOTIFICATION_FETCH_LIMIT = int(os.environ.get("NOTIFICATION_FETCH_LIMIT", "50"))

    # bcrypt cost for the local auth provider's password hashes
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    # Upper bound for a request waiting on the sync engine
    RUNTIME_CALL_TIMEOUT_SECONDS = float(os.environ.get("RUNTIME_CALL_TIMEOUT_SECONDS", "30"))
