# users_admin_api.py
import sqlite3
from flask import Blueprint, current_app, request, jsonify
from werkzeug.security import generate_password_hash
from security import admin_required, super_admin_required, current_user, ADMIN_ROLES
from auth_api import public_user
from quota_api import usage_rows
from ledger import parse_minutes
from db import (
    get_user_by_id, create_user, update_user, delete_user, list_users_with_usage,
    get_today, get_month_start, get_usage_history, get_default_daily_minutes, is_duplicate_email,
)

users_admin_bp = Blueprint("users_admin_bp", __name__)

ROLES = ("student",) + ADMIN_ROLES


@users_admin_bp.get("/api/admin/users")
@admin_required
def list_users():
    rows = list_users_with_usage(get_today(current_app.config["QUOTA_TIMEZONE"]))
    return jsonify([
        dict(public_user(r), created_at=r["created_at"], used_today=r["used_today"], messages_today=r["messages_today"])
        for r in rows
    ])


@users_admin_bp.get("/api/admin/users/<int:uid>")
@admin_required
def user_detail(uid):
    u = get_user_by_id(uid)
    if not u:
        return jsonify({"error": "not_found"}), 404
    usage = usage_rows(get_usage_history(uid, get_month_start(current_app.config["QUOTA_TIMEZONE"])))
    return jsonify({
        "user": dict(public_user(u), created_at=u["created_at"]),
        "usage": usage,
        "monthly_total": sum(r["minutes_used"] for r in usage),
    })


@users_admin_bp.post("/api/admin/users")
@admin_required
def create():
    d = request.get_json(force=True, silent=True) or {}
    email = (d.get("email") or "").strip().lower()
    password = d.get("password") or ""
    name = (d.get("name") or "").strip()
    role = d.get("role") or "student"
    if not email or not password or not name or role not in ROLES:
        return jsonify({"error": "bad_request"}), 400
    # only a super admin hands out admin roles
    if role in ADMIN_ROLES and current_user()["role"] != "super_admin":
        return jsonify({"error": "forbidden"}), 403
    minutes = get_default_daily_minutes()
    if d.get("daily_minutes") is not None:
        minutes = parse_minutes(d["daily_minutes"])
        if minutes is None:
            return jsonify({"error": "bad_request"}), 400
    try:
        user = create_user(email, generate_password_hash(password), name, role=role, daily_minutes=minutes)
    except sqlite3.IntegrityError as e:
        if not is_duplicate_email(e):
            raise
        return jsonify({"error": "email_taken"}), 400
    return jsonify({"message": "created", "user": public_user(user)})


@users_admin_bp.put("/api/admin/users/<int:uid>")
@admin_required
def update(uid):
    d = request.get_json(force=True, silent=True) or {}
    if "role" in d and current_user()["role"] != "super_admin":
        return jsonify({"error": "forbidden"}), 403
    fields = {}
    if "name" in d:
        name = (d["name"] or "").strip()
        if not name:
            return jsonify({"error": "bad_request"}), 400
        fields["name"] = name
    if "daily_minutes" in d:
        minutes = parse_minutes(d["daily_minutes"])
        if minutes is None:
            return jsonify({"error": "bad_request"}), 400
        fields["daily_minutes"] = minutes
    if "is_active" in d:
        fields["is_active"] = 1 if d["is_active"] else 0
    if "role" in d:
        if d["role"] not in ROLES:
            return jsonify({"error": "bad_request"}), 400
        fields["role"] = d["role"]
    if not fields:
        return jsonify({"error": "bad_request"}), 400
    if update_user(uid, fields) == 0:
        return jsonify({"error": "not_found"}), 404
    return jsonify({"message": "updated"})


@users_admin_bp.delete("/api/admin/users/<int:uid>")
@super_admin_required
def delete(uid):
    if uid == current_user()["id"]:
        return jsonify({"error": "cannot_delete_self"}), 400
    if delete_user(uid) == 0:
        return jsonify({"error": "not_found"}), 404
    return jsonify({"message": "deleted"})
