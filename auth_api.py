import sqlite3
from flask import Blueprint, request, jsonify
from werkzeug.security import generate_password_hash, check_password_hash

from db import get_user_by_email, create_user, get_default_daily_minutes, is_duplicate_email
from security import login_required, current_user, issue_token

auth_bp = Blueprint("auth_bp", __name__)


def public_user(u):
    return {
        "id": u["id"],
        "email": u["email"],
        "name": u["name"],
        "role": u["role"],
        "daily_minutes": u["daily_minutes"],
        "is_active": bool(u["is_active"]),
    }


@auth_bp.post("/api/auth/register")
def register():
    d = request.get_json(force=True, silent=True) or {}
    email = (d.get("email") or "").strip().lower()
    password = d.get("password") or ""
    name = (d.get("name") or "").strip()
    if not email or not password or not name:
        return jsonify({"error": "bad_request"}), 400
    try:
        user = create_user(
            email, generate_password_hash(password), name,
            daily_minutes=get_default_daily_minutes(),
        )
    except sqlite3.IntegrityError as e:
        if not is_duplicate_email(e):
            raise
        return jsonify({"error": "email_taken"}), 400
    return jsonify({"message": "registered", "token": issue_token(user), "user": public_user(user)})


@auth_bp.post("/api/auth/login")
def login():
    d = request.get_json(force=True, silent=True) or {}
    email = (d.get("email") or "").strip().lower()
    password = d.get("password") or ""
    if not email or not password:
        return jsonify({"error": "bad_request"}), 400
    u = get_user_by_email(email)
    if not u or not u["is_active"] or not check_password_hash(u["password_hash"], password):
        return jsonify({"error": "invalid_credentials"}), 401
    return jsonify({"message": "logged_in", "token": issue_token(u), "user": public_user(u)})


@auth_bp.get("/api/auth/me")
@login_required
def me():
    return jsonify(public_user(current_user()))
