import datetime
import logging
import sqlite3
from zoneinfo import ZoneInfo

from flask import Flask, jsonify
from dotenv import load_dotenv

from db import ensure_admin, ensure_settings
from config_loader import load_config
from ledger import UserNotFound, StorageFailure
from auth_api import auth_bp
from chat_api import chat_bp
from quota_api import quota_bp
from config_admin_api import config_admin_bp
from users_admin_api import users_admin_bp

load_dotenv()
logging.basicConfig(level=logging.INFO)

DEFAULT_SETTINGS = {
    "default_daily_minutes": 60,
    "system_personality": "Sei un assistente amichevole.",
}


def create_app(cfg=None):
    cfg = cfg if cfg is not None else load_config()
    app = Flask(__name__)
    app.config["VOICE_AGENT"] = cfg
    app.config["JWT_SECRET"] = cfg["auth"]["jwt_secret"]
    app.config["TOKEN_TTL_DAYS"] = int(cfg["auth"].get("token_ttl_days", 7))
    tz_name = cfg.get("quota", {}).get("timezone", "UTC")
    ZoneInfo(tz_name)  # raises ZoneInfoNotFoundError for unknown zones
    app.config["QUOTA_TIMEZONE"] = tz_name

    ensure_settings(dict(DEFAULT_SETTINGS, **cfg.get("defaults", {})))
    admin = cfg.get("admin", {})
    if admin.get("email") and admin.get("password"):
        ensure_admin(admin["email"].strip().lower(), admin["password"])
        logging.info("Super admin ensured: %s", admin["email"])

    app.register_blueprint(auth_bp)
    app.register_blueprint(chat_bp)
    app.register_blueprint(quota_bp)
    app.register_blueprint(config_admin_bp)
    app.register_blueprint(users_admin_bp)

    @app.errorhandler(UserNotFound)
    def _user_not_found(e):
        return jsonify({"error": "not_found"}), 404

    @app.errorhandler(StorageFailure)
    @app.errorhandler(sqlite3.Error)
    def _storage_failure(e):
        logging.error("Storage failure: %s", e)
        return jsonify({"error": "storage_failure"}), 500

    @app.get("/api/health")
    def health():
        return jsonify({
            "status": "ok",
            "message": "Voice Agent API with Auth is running",
            "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        })

    return app


if __name__ == "__main__":
    _cfg = load_config()
    server = _cfg.get("server", {})
    create_app(_cfg).run(host=server.get("host", "127.0.0.1"), port=int(server.get("port", 3000)))
