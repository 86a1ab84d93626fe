import os, toml, threading
from dotenv import load_dotenv

load_dotenv()

CONFIG_PATH = os.environ.get("VOICE_AGENT_CONFIG", "config.toml")
_lock = threading.Lock()

def load_config(path=None):
    with _lock:
        cfg = toml.load(path or CONFIG_PATH)
    secret = os.getenv("VOICE_AGENT_JWT_SECRET")
    if secret:
        cfg.setdefault("auth", {})["jwt_secret"] = secret
    return cfg
