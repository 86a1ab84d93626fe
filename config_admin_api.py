from flask import Blueprint, request, jsonify
from security import admin_required
from db import get_settings, set_settings
from ledger import parse_minutes

config_admin_bp = Blueprint("config_admin_bp", __name__)

@config_admin_bp.get("/api/admin/settings")
@admin_required
def get_admin_settings():
    return jsonify(get_settings())

@config_admin_bp.put("/api/admin/settings")
@admin_required
def update_admin_settings():
    d = request.get_json(force=True, silent=True) or {}
    updates = {}
    if "default_daily_minutes" in d:
        v = parse_minutes(d["default_daily_minutes"])
        if v is None:
            return jsonify({"error": "bad_request"}), 400
        updates["default_daily_minutes"] = int(v) if v.is_integer() else v
    if "system_personality" in d:
        p = d["system_personality"]
        if not isinstance(p, str) or not p.strip():
            return jsonify({"error": "bad_request"}), 400
        updates["system_personality"] = p
    if not updates:
        return jsonify({"error": "bad_request"}), 400
    set_settings(updates)
    return jsonify(get_settings())
