import datetime
from zoneinfo import ZoneInfoNotFoundError

import pytest

import db
from ledger import accrue, get_remaining

MESSAGES = [{"role": "user", "content": "Ciao"}]

# 10:30 UTC on the 14th is 00:30 on the 15th in Kiritimati (UTC+14)
NOW = datetime.datetime(2026, 3, 14, 10, 30, tzinfo=datetime.timezone.utc)


@pytest.fixture()
def frozen_clock(monkeypatch):
    monkeypatch.setattr(db, "_utcnow", lambda: NOW)


@pytest.mark.parametrize("quota_timezone, day", [
    ("UTC", "2026-03-14"),
    ("Pacific/Kiritimati", "2026-03-15"),
])
def test_get_today_follows_configured_zone(frozen_clock, quota_timezone, day):
    assert db.get_today(quota_timezone) == day
    assert db.get_month_start(quota_timezone) == "2026-03-01"


@pytest.mark.parametrize("quota_timezone", ["Pacific/Kiritimati"])
def test_chat_and_usage_share_the_configured_day(frozen_clock, client, make_user, login, upstream):
    user = make_user(daily_minutes=60)
    headers = login("student@example.com")

    resp = client.post("/api/chat", json={"messages": MESSAGES}, headers=headers)

    assert resp.status_code == 200
    rows = db.get_usage_history(user["id"], "0000-00-00")
    assert [r["date"] for r in rows] == ["2026-03-15"]
    assert get_remaining(user["id"], "2026-03-14").used == 0

    usage = client.get("/api/usage/me", headers=headers).get_json()
    assert usage["today"]["messages_count"] == 1
    assert usage["today"]["minutes_used"] == pytest.approx(2.5)
    assert [r["date"] for r in usage["history"]] == ["2026-03-15"]

    quota = client.get("/api/quota", headers=headers).get_json()
    assert quota["used"] == pytest.approx(2.5)
    assert quota["remaining"] == pytest.approx(57.5)


@pytest.mark.parametrize("quota_timezone", ["Pacific/Kiritimati"])
def test_exhausted_utc_day_does_not_block_next_local_day(frozen_clock, client, make_user, login, upstream):
    user = make_user(daily_minutes=10)
    accrue(user["id"], "2026-03-14", 10.0)

    resp = client.post("/api/chat", json={"messages": MESSAGES}, headers=login("student@example.com"))

    assert resp.status_code == 200
    assert resp.get_json()["usage_info"]["used_before"] == 0
    assert len(upstream.calls) == 1


def test_unknown_timezone_fails_at_startup(make_app):
    with pytest.raises(ZoneInfoNotFoundError):
        make_app("Mars/Olympus_Mons")
