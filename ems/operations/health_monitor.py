# ems/operations/health_monitor.py
# Liveness/Readiness health checks (DB, disk, clock source)

import shutil
from datetime import datetime, timezone
from typing import Dict

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ems import db
from ems.voting.clock import TimeSourceUnavailable

bp = Blueprint('health', __name__)


def _check_db() -> Dict:
    try:
        db.session.execute(text("SELECT 1"))
        return {"ok": True, "detail": "database ok"}
    except SQLAlchemyError as e:
        db.session.rollback()
        return {"ok": False, "error": str(e)}


def _check_disk(path, min_free_gb) -> Dict:
    total, used, free = shutil.disk_usage(path)
    free_gb = free / (1024**3)
    return {"ok": free_gb >= min_free_gb, "free_gb": round(free_gb, 2), "min_required_gb": min_free_gb}


def _check_time(clock, max_offset_s) -> Dict:
    """Compare the election clock with this host's clock."""
    try:
        reference = clock.now()
    except TimeSourceUnavailable as e:
        return {"ok": False, "source": clock.name, "error": str(e)}
    offset = (reference - datetime.now(timezone.utc)).total_seconds()
    return {
        "ok": abs(offset) <= max_offset_s,
        "source": clock.name,
        "time": reference.isoformat(),
        "offset_s": round(offset, 6),
        "max_allowed_offset_s": max_offset_s,
    }


def check_health() -> Dict:
    """Aggregate overall system health."""
    config = current_app.config
    database = _check_db()
    disk = _check_disk(config['AUDIT_LOG_DIR'], config['MIN_FREE_DISK_GB'])
    tm = _check_time(current_app.extensions['ems']['clock'], config['MAX_TIME_OFFSET_S'])
    overall = database["ok"] and disk["ok"] and tm["ok"]
    return {"db": database, "disk": disk, "time": tm, "overall_ok": overall}


@bp.get("/health")
def liveness():
    res = check_health()
    code = 200 if res["overall_ok"] else 503
    return jsonify(res), code


@bp.get("/ready")
def readiness():
    # readiness: DB + disk only, no round trip to the clock source
    config = current_app.config
    database = _check_db()
    disk = _check_disk(config['AUDIT_LOG_DIR'], config['MIN_FREE_DISK_GB'])
    ok = database["ok"] and disk["ok"]
    res = {"db": database, "disk": disk, "overall_ok": ok}
    return jsonify(res), 200 if ok else 503
