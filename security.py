import datetime
from functools import wraps
import jwt
from flask import current_app, g, jsonify, request
from db import get_user_by_id

ADMIN_ROLES = ("admin", "super_admin")


def issue_token(user):
    ttl = datetime.timedelta(days=current_app.config["TOKEN_TTL_DAYS"])
    claims = {
        "id": user["id"],
        "email": user["email"],
        "role": user["role"],
        "exp": datetime.datetime.now(datetime.timezone.utc) + ttl,
    }
    return jwt.encode(claims, current_app.config["JWT_SECRET"], algorithm="HS256")


def _bearer_claims():
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    try:
        return jwt.decode(token, current_app.config["JWT_SECRET"], algorithms=["HS256"])
    except jwt.InvalidTokenError:
        return None


def current_user():
    if "user" not in g:
        claims = _bearer_claims()
        u = get_user_by_id(claims["id"]) if claims and "id" in claims else None
        g.user = u if u and u["is_active"] else None
    return g.user


def login_required(fn):
    @wraps(fn)
    def w(*a, **k):
        if not current_user():
            return jsonify({"error": "auth_required"}), 401
        return fn(*a, **k)
    return w


def admin_required(fn):
    @wraps(fn)
    def w(*a, **k):
        u = current_user()
        if not u:
            return jsonify({"error": "auth_required"}), 401
        if u["role"] not in ADMIN_ROLES:
            return jsonify({"error": "forbidden"}), 403
        return fn(*a, **k)
    return w


def super_admin_required(fn):
    @wraps(fn)
    def w(*a, **k):
        u = current_user()
        if not u:
            return jsonify({"error": "auth_required"}), 401
        if u["role"] != "super_admin":
            return jsonify({"error": "forbidden"}), 403
        return fn(*a, **k)
    return w
