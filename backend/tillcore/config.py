# backend/tillcore/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/tillcore.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location (postgresql+psycopg://...)
        "sqlite:///tillcore.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Invoice numbering: "<prefix><zero padded sequence>", e.g. INV-000042
    DEFAULT_INVOICE_PREFIX = os.environ.get("TILLCORE_INVOICE_PREFIX", "INV-")
    INVOICE_NUMBER_PAD = 6

    # Lock contention on the per-tenant sequence row is the only thing retried
    SEQUENCE_RETRY_ATTEMPTS = int(os.environ.get("TILLCORE_SEQUENCE_RETRY_ATTEMPTS", "3"))
    SEQUENCE_RETRY_BACKOFF = 0.05

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Browser POS terminals allowed to call the API directly
    CORS_ALLOWED_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get(
            "TILLCORE_CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if o.strip()
    )
