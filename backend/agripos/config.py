# backend/agripos/config.py
from __future__ import annotations
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/agripos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///agripos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Sales tax in basis points (800 = 8%), applied to subtotal minus discount
    TAX_RATE_BPS = int(os.environ.get("AGRIPOS_TAX_RATE_BPS", "0"))

    # Credit utilisation (percent of limit) that adds a warning to a sale
    CREDIT_ALERT_PCT = int(os.environ.get("AGRIPOS_CREDIT_ALERT_PCT", "80"))

    # Session lifetime and idle timeout, in seconds
    SESSION_MAX_AGE = int(os.environ.get("AGRIPOS_SESSION_MAX_AGE", str(12 * 60 * 60)))
    SESSION_IDLE_TIMEOUT = int(os.environ.get("AGRIPOS_SESSION_IDLE_TIMEOUT", str(2 * 60 * 60)))
    BCRYPT_ROUNDS = int(os.environ.get("AGRIPOS_BCRYPT_ROUNDS", "12"))

    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("AGRIPOS_LEDGER_RETRY_ATTEMPTS", "3"))

    # Front-end origins allowed to call the API from a browser
    CORS_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get("AGRIPOS_CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
        if o.strip()
    )
