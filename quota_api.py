from flask import Blueprint, current_app, jsonify
from security import login_required, admin_required, current_user
from db import get_today, get_month_start, get_usage_history, get_usage_stats
from ledger import get_remaining

quota_bp = Blueprint("quota_bp", __name__)


def usage_rows(rows):
    return [
        {"date": r["date"], "minutes_used": r["minutes_used"], "messages_count": r["messages_count"]}
        for r in rows
    ]


@quota_bp.get("/api/quota")
@login_required
def get_quota():
    b = get_remaining(current_user()["id"], get_today(current_app.config["QUOTA_TIMEZONE"]))
    return jsonify({"remaining": max(0.0, b.remaining), "limit": b.limit, "used": b.used})


@quota_bp.get("/api/usage/me")
@login_required
def my_usage():
    tz = current_app.config["QUOTA_TIMEZONE"]
    today = get_today(tz)
    b = get_remaining(current_user()["id"], today)
    history = usage_rows(get_usage_history(current_user()["id"], get_month_start(tz)))
    return jsonify({
        "today": {"minutes_used": b.used, "messages_count": b.messages},
        "monthly_total": sum(r["minutes_used"] for r in history),
        "daily_limit": b.limit,
        "remaining_today": max(0.0, b.remaining),
        "history": history,
    })


@quota_bp.get("/api/admin/stats")
@admin_required
def stats():
    tz = current_app.config["QUOTA_TIMEZONE"]
    r = get_usage_stats(get_today(tz), get_month_start(tz))
    return jsonify({
        "total_users": r["total_users"],
        "active_today": r["active_today"],
        "minutes_today": round(r["minutes_today"], 2),
        "minutes_month": round(r["minutes_month"], 2),
    })
