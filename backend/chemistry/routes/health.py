from __future__ import annotations

from flask import Blueprint, current_app, jsonify

bp = Blueprint("health", __name__)


@bp.get("/")
def index():
    return jsonify({"message": "Welcome to the Chemistry Game API!"})


@bp.get("/api/health")
def health():
    service = current_app.extensions["chemistry"]
    store = service.store
    return jsonify(
        {
            "status": "ok",
            "store": getattr(store, "kind", "memory"),
            "storeConnected": store.is_available(),
            "rooms": len(service.list_rooms()),
        }
    )
