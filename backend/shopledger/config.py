# backend/shopledger/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/shopledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///shopledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # True: each purchase/sale workflow is one DB transaction (rollback on failure).
    # False: every step commits and failures unwind the compensation stack.
    LEDGER_ATOMIC_WORKFLOWS = _env_flag("LEDGER_ATOMIC_WORKFLOWS", True)

    # Debits that would take an account below zero are refused unless enabled
    ALLOW_NEGATIVE_BALANCE = _env_flag("ALLOW_NEGATIVE_BALANCE", False)

    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "24"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_DIR = os.environ.get("LOG_DIR")  # unset -> console only
