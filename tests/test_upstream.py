import pytest
import requests

from upstream import DEFAULT_API_URL, UpstreamFailure, call_chat, usage_tokens


def test_call_chat_sends_api_key(upstream, monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
    data = call_chat([{"role": "user", "content": "hi"}], "Be brief.", {"model": "m", "max_tokens": 10})
    assert data["id"] == "msg_1"
    call = upstream.calls[0]
    assert call["url"] == DEFAULT_API_URL
    assert call["headers"]["x-api-key"] == "sk-test"
    assert call["json"]["max_tokens"] == 10


def test_transport_error_maps_to_bad_gateway(monkeypatch):
    def refuse(*a, **k):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr("upstream.requests.post", refuse)
    with pytest.raises(UpstreamFailure) as exc:
        call_chat([{"role": "user", "content": "hi"}], "", {})
    assert exc.value.status == 502


def test_error_status_keeps_upstream_message(upstream):
    upstream.status_code = 401
    upstream.payload = {"error": {"type": "authentication_error", "message": "invalid x-api-key"}}
    with pytest.raises(UpstreamFailure) as exc:
        call_chat([{"role": "user", "content": "hi"}], "", {})
    assert (exc.value.status, exc.value.message) == (401, "invalid x-api-key")


@pytest.mark.parametrize("payload, expected", [
    ({"usage": {"input_tokens": 12, "output_tokens": 30}}, (12, 30)),
    ({"usage": {"input_tokens": 12}}, (12, 0)),
    ({"usage": None}, (0, 0)),
    ({}, (0, 0)),
    (None, (0, 0)),
])
def test_usage_tokens(payload, expected):
    assert usage_tokens(payload) == expected
