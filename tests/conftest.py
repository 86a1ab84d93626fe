import copy

import pytest
from werkzeug.security import generate_password_hash

import db
from app import create_app

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-secret"
PASSWORD = "student-secret"

TEST_CONFIG = {
    "auth": {"jwt_secret": "tests-secret", "token_ttl_days": 7},
    "admin": {"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD},
    "defaults": {"default_daily_minutes": 60, "system_personality": "Be brief."},
    "quota": {"timezone": "UTC"},
    "llm": {
        "api_url": "https://upstream.test/v1/messages",
        "model": "test-model",
        "max_tokens": 500,
        "timeout_seconds": 5,
    },
}


class FakeResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeUpstream:
    def __init__(self):
        self.calls = []
        self.status_code = 200
        self.payload = {
            "id": "msg_1",
            "content": [{"type": "text", "text": "Ciao!"}],
            "usage": {"input_tokens": 400, "output_tokens": 250},
        }

    def post(self, url, headers=None, json=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        return FakeResponse(self.status_code, self.payload)


@pytest.fixture()
def quota_timezone():
    return "UTC"


@pytest.fixture()
def make_app(tmp_path, monkeypatch):
    monkeypatch.setattr(db, "DB_PATH", str(tmp_path / "voice_agent.db"))

    def _make(timezone="UTC"):
        cfg = copy.deepcopy(TEST_CONFIG)
        cfg["quota"]["timezone"] = timezone
        return create_app(cfg)
    return _make


@pytest.fixture()
def app(make_app, quota_timezone):
    return make_app(quota_timezone)


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def upstream(monkeypatch):
    fake = FakeUpstream()
    monkeypatch.setattr("upstream.requests.post", fake.post)
    return fake


@pytest.fixture()
def make_user(app):
    def _make(email="student@example.com", name="Student", role="student", daily_minutes=60, is_active=True):
        user = db.create_user(email, generate_password_hash(PASSWORD), name, role=role, daily_minutes=daily_minutes)
        if not is_active:
            db.update_user(user["id"], {"is_active": 0})
        return user
    return _make


@pytest.fixture()
def login(client):
    def _login(email, password=PASSWORD):
        resp = client.post("/api/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.get_json()
        return {"Authorization": f"Bearer {resp.get_json()['token']}"}
    return _login


@pytest.fixture()
def admin_headers(login):
    return login(ADMIN_EMAIL, ADMIN_PASSWORD)
