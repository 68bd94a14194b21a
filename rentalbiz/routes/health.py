from datetime import datetime

from flask import Blueprint, jsonify

from ..extensions import db

bp = Blueprint("health", __name__)


@bp.get("/health")
def health():
    return jsonify({
        "status": "ok",
        "time": datetime.utcnow().isoformat() + "Z",
        "service": "rentalbiz-scheduler",
    }), 200


@bp.get("/readyz")
def readyz():
    try:
        db.session.execute(db.text("SELECT 1"))
        return jsonify(ready=True)
    except Exception as e:
        return jsonify(ready=False, error=str(e)), 500
