import os
import logging
import requests
from dotenv import load_dotenv

load_dotenv()

DEFAULT_API_URL = "https://api.anthropic.com/v1/messages"
DEFAULT_MODEL = "claude-3-5-haiku-20241022"


class UpstreamFailure(Exception):
    def __init__(self, status, message):
        super().__init__(f"{status}: {message}")
        self.status = status
        self.message = message


def _error_message(resp):
    try:
        data = resp.json()
    except ValueError:
        return "API request failed"
    err = data.get("error") if isinstance(data, dict) else None
    if isinstance(err, dict) and err.get("message"):
        return err["message"]
    return "API request failed"


def call_chat(messages, system_prompt, llm_cfg=None):
    """POST a Messages API request; returns the decoded JSON body or raises UpstreamFailure."""
    llm_cfg = llm_cfg or {}
    url = llm_cfg.get("api_url", DEFAULT_API_URL)
    headers = {
        "Content-Type": "application/json",
        "x-api-key": os.getenv("ANTHROPIC_API_KEY", ""),
        "anthropic-version": llm_cfg.get("anthropic_version", "2023-06-01"),
    }
    body = {
        "model": llm_cfg.get("model", DEFAULT_MODEL),
        "max_tokens": int(llm_cfg.get("max_tokens", 500)),
        "system": system_prompt,
        "messages": messages,
    }
    try:
        resp = requests.post(url, headers=headers, json=body, timeout=llm_cfg.get("timeout_seconds", 60))
    except requests.RequestException as e:
        logging.error("Upstream request error: %s", e)
        raise UpstreamFailure(502, "API request failed") from e
    if not resp.ok:
        message = _error_message(resp)
        logging.error("Upstream API error %s: %s", resp.status_code, message)
        raise UpstreamFailure(resp.status_code, message)
    try:
        return resp.json()
    except ValueError as e:
        raise UpstreamFailure(502, "Invalid upstream response") from e


def usage_tokens(payload):
    """(input_tokens, output_tokens) from a Messages API response, 0 where absent."""
    usage = payload.get("usage") if isinstance(payload, dict) else None
    if not isinstance(usage, dict):
        return 0, 0
    return usage.get("input_tokens") or 0, usage.get("output_tokens") or 0
