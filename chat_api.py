import logging
from flask import Blueprint, current_app, request, jsonify

from db import get_today, get_setting
from ledger import check_and_admit, estimate_consumption, accrue, StorageFailure
from security import login_required, current_user
from upstream import call_chat, usage_tokens, UpstreamFailure

chat_bp = Blueprint("chat_bp", __name__)

FALLBACK_PERSONALITY = "Sei un assistente amichevole."


def _valid_messages(messages):
    if not isinstance(messages, list) or not messages:
        return False
    return all(isinstance(m, dict) and m.get("role") and "content" in m for m in messages)


@chat_bp.post("/api/chat")
@login_required
def chat():
    d = request.get_json(force=True, silent=True) or {}
    messages = d.get("messages")
    if not _valid_messages(messages):
        return jsonify({"error": "bad_request"}), 400

    cfg = current_app.config["VOICE_AGENT"]
    uid = current_user()["id"]
    today = get_today(current_app.config["QUOTA_TIMEZONE"])

    admission = check_and_admit(uid, today)
    if not admission.admitted:
        return jsonify({
            "error": "quota_exceeded",
            "daily_limit": admission.balance.limit,
            "used_today": admission.balance.used,
            "remaining": 0,
        }), 429

    personality = get_setting("system_personality") or FALLBACK_PERSONALITY
    if cfg.get("logging", {}).get("verbose", False):
        logging.info("Chat prompt for user %s: %s", uid, messages)

    try:
        data = call_chat(messages, personality, cfg.get("llm", {}))
    except UpstreamFailure as e:
        return jsonify({"error": e.message}), e.status

    minutes = estimate_consumption(*usage_tokens(data))
    used_before = admission.balance.used
    limit = admission.balance.limit
    usage_info = {"minutes_used_now": minutes, "used_before": used_before, "daily_limit": limit}
    try:
        used_now = accrue(uid, today, minutes).used_after
    except StorageFailure:
        # the answer is delivered even when the usage write fails
        logging.exception("Usage accrual failed for user %s on %s", uid, today)
        used_now = used_before + minutes
        usage_info["usage_error"] = "storage_failure"

    usage_info["total_used_today"] = used_now
    usage_info["remaining"] = max(0.0, limit - used_now)
    resp = dict(data)
    resp["usage_info"] = usage_info
    return jsonify(resp)
