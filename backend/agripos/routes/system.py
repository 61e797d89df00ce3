# backend/agripos/routes/system.py
"""
System health endpoint.

Reports database connectivity and row counts for the ledger tables, plus
whether every account balance still matches its ledger.
"""

import time
from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Account, LedgerEntry, Transaction
from ..services import ledger_service
from agripos.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        account_count = db.session.query(Account).count()
        transaction_count = db.session.query(Transaction).count()
        entry_count = db.session.query(LedgerEntry).count()
        unbalanced = [r["account_id"] for r in ledger_service.reconcile_all() if not r["balanced"]]

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy" if not unbalanced else "degraded",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "accounts": account_count,
                "transactions": transaction_count,
                "ledger_entries": entry_count,
                "unbalanced_accounts": unbalanced,
            }
        }
    except SQLAlchemyError:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    status_code = 200 if database["status"] != "unhealthy" else 503
    return jsonify({
        "status": database["status"],
        "time": to_utc_z(utcnow()),
        "checks": {"database": database},
    }), status_code
