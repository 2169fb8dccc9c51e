# backend/stockflow/config.py
from __future__ import annotations
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockflow.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///stockflow.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Writers on SQLite wait on the database lock instead of failing fast
    SQLITE_TIMEOUT = float(os.environ.get("SQLITE_TIMEOUT", "30"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Document numbering: PO-2026-0001, TRX-2026-000001
    PO_NUMBER_PREFIX = os.environ.get("PO_NUMBER_PREFIX", "PO")
    PO_NUMBER_PAD = int(os.environ.get("PO_NUMBER_PAD", "4"))
    TRX_NUMBER_PREFIX = os.environ.get("TRX_NUMBER_PREFIX", "TRX")
    TRX_NUMBER_PAD = int(os.environ.get("TRX_NUMBER_PAD", "6"))

    # Only idempotent reads are retried
    READ_RETRY_ATTEMPTS = int(os.environ.get("READ_RETRY_ATTEMPTS", "3"))
