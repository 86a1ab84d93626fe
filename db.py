import sqlite3, os, pathlib, datetime, math
from zoneinfo import ZoneInfo
from werkzeug.security import generate_password_hash

DB_PATH = os.environ.get("VOICE_AGENT_DB", "voice_agent.db")

SCHEMA = """
PRAGMA journal_mode=WAL;
CREATE TABLE IF NOT EXISTS users (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  email TEXT UNIQUE NOT NULL,
  password_hash TEXT NOT NULL,
  name TEXT NOT NULL,
  role TEXT NOT NULL DEFAULT 'student' CHECK(role IN ('student','admin','super_admin')),
  daily_minutes REAL NOT NULL DEFAULT 60 CHECK(daily_minutes > 0),
  is_active INTEGER NOT NULL DEFAULT 1,
  created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS usage (
  user_id INTEGER NOT NULL,
  date TEXT NOT NULL,
  minutes_used REAL NOT NULL DEFAULT 0,
  messages_count INTEGER NOT NULL DEFAULT 0,
  PRIMARY KEY (user_id, date),
  FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);
CREATE TABLE IF NOT EXISTS settings (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL
);
"""

USER_COLUMNS = "id, email, name, role, daily_minutes, is_active, created_at"

def get_conn():
    need_init = not pathlib.Path(DB_PATH).exists()
    conn = sqlite3.connect(DB_PATH, timeout=30, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    if need_init:
        conn.executescript(SCHEMA)
        conn.commit()
    return conn

def _utcnow():
    return datetime.datetime.now(datetime.timezone.utc)

def _now():
    return _utcnow().isoformat()

def ensure_admin(admin_email: str, cleartext_password: str):
    final_hash = generate_password_hash(cleartext_password)
    conn = get_conn()
    try:
        conn.execute(
            """
            INSERT INTO users (email, password_hash, name, role, daily_minutes, created_at)
            VALUES (?, ?, 'Super Admin', 'super_admin', 999999, ?)
            ON CONFLICT(email) DO UPDATE SET
                password_hash=excluded.password_hash,
                role='super_admin',
                is_active=1
            """,
            (admin_email, final_hash, _now()),
        )
        conn.commit()
    finally:
        conn.close()

# Settings
def ensure_settings(defaults: dict):
    conn = get_conn()
    try:
        conn.executemany(
            "INSERT OR IGNORE INTO settings (key, value) VALUES (?,?)",
            [(k, str(v)) for k, v in defaults.items()],
        )
        conn.commit()
    finally:
        conn.close()

def get_setting(key, default=None):
    conn = get_conn()
    try:
        r = conn.execute("SELECT value FROM settings WHERE key=?", (key,)).fetchone()
    finally:
        conn.close()
    return r["value"] if r else default

def get_settings():
    conn = get_conn()
    try:
        rows = conn.execute("SELECT key, value FROM settings ORDER BY key").fetchall()
    finally:
        conn.close()
    return {r["key"]: r["value"] for r in rows}

def set_settings(values: dict):
    conn = get_conn()
    try:
        conn.executemany(
            "INSERT OR REPLACE INTO settings (key, value) VALUES (?,?)",
            [(k, str(v)) for k, v in values.items()],
        )
        conn.commit()
    finally:
        conn.close()

def get_default_daily_minutes(fallback=60.0):
    try:
        v = float(get_setting("default_daily_minutes", fallback))
    except ValueError:
        return float(fallback)
    return v if math.isfinite(v) and v > 0 else float(fallback)

def is_duplicate_email(err: sqlite3.IntegrityError):
    return "UNIQUE" in str(err) and "users.email" in str(err)

# Users
def get_user_by_email(email):
    conn = get_conn()
    try:
        return conn.execute("SELECT * FROM users WHERE email=?", (email,)).fetchone()
    finally:
        conn.close()

def get_user_by_id(uid):
    conn = get_conn()
    try:
        return conn.execute("SELECT * FROM users WHERE id=?", (uid,)).fetchone()
    finally:
        conn.close()

def create_user(email, password_hash, name, role="student", daily_minutes=60):
    """
    Inserts a user and returns the new row (without the password hash).
    Raises sqlite3.IntegrityError when the email is already registered
    (see ``is_duplicate_email``) or a column constraint fails.
    """
    conn = get_conn()
    try:
        cur = conn.execute(
            "INSERT INTO users (email, password_hash, name, role, daily_minutes, created_at) VALUES (?,?,?,?,?,?)",
            (email, password_hash, name, role, daily_minutes, _now()),
        )
        conn.commit()
        return conn.execute(f"SELECT {USER_COLUMNS} FROM users WHERE id=?", (cur.lastrowid,)).fetchone()
    finally:
        conn.close()

def list_users_with_usage(date):
    conn = get_conn()
    try:
        return conn.execute(
            """
            SELECT u.id, u.email, u.name, u.role, u.daily_minutes, u.is_active, u.created_at,
                   COALESCE(us.minutes_used, 0) AS used_today,
                   COALESCE(us.messages_count, 0) AS messages_today
            FROM users u
            LEFT JOIN usage us ON u.id = us.user_id AND us.date = ?
            ORDER BY u.created_at DESC, u.id DESC
            """,
            (date,),
        ).fetchall()
    finally:
        conn.close()

def update_user(uid, fields: dict):
    """Applies a partial update; returns the number of rows changed."""
    allowed = ("name", "daily_minutes", "is_active", "role")
    cols = [k for k in allowed if k in fields]
    if not cols:
        return 0
    assignments = ", ".join(f"{k}=?" for k in cols)
    conn = get_conn()
    try:
        cur = conn.execute(
            f"UPDATE users SET {assignments} WHERE id=?",
            [fields[k] for k in cols] + [uid],
        )
        conn.commit()
        return cur.rowcount
    finally:
        conn.close()

def delete_user(uid):
    conn = get_conn()
    try:
        conn.execute("DELETE FROM usage WHERE user_id=?", (uid,))
        cur = conn.execute("DELETE FROM users WHERE id=?", (uid,))
        conn.commit()
        return cur.rowcount
    finally:
        conn.close()

# Usage
def get_today(tz_name="UTC"):
    return _utcnow().astimezone(ZoneInfo(tz_name)).date().isoformat()

def get_month_start(tz_name="UTC"):
    return _utcnow().astimezone(ZoneInfo(tz_name)).date().replace(day=1).isoformat()

def get_user_usage(user_id, date):
    """Active user's limit joined with the usage row for ``date``; None if no such active user."""
    conn = get_conn()
    try:
        return conn.execute(
            """
            SELECT u.daily_minutes,
                   COALESCE(us.minutes_used, 0) AS minutes_used,
                   COALESCE(us.messages_count, 0) AS messages_count
            FROM users u
            LEFT JOIN usage us ON u.id = us.user_id AND us.date = ?
            WHERE u.id = ? AND u.is_active = 1
            """,
            (date, user_id),
        ).fetchone()
    finally:
        conn.close()

def add_usage(user_id, date, minutes):
    """Insert-or-accumulate in a single statement; returns the row after the write."""
    conn = get_conn()
    try:
        rows = conn.execute(
            """
            INSERT INTO usage (user_id, date, minutes_used, messages_count)
            VALUES (?, ?, ?, 1)
            ON CONFLICT(user_id, date) DO UPDATE SET
                minutes_used = minutes_used + excluded.minutes_used,
                messages_count = messages_count + 1
            RETURNING minutes_used, messages_count
            """,
            (user_id, date, minutes),
        ).fetchall()
        conn.commit()
        return rows[0]
    finally:
        conn.close()

def get_usage_history(user_id, since):
    conn = get_conn()
    try:
        return conn.execute(
            """
            SELECT date, minutes_used, messages_count
            FROM usage
            WHERE user_id=? AND date >= ?
            ORDER BY date DESC
            """,
            (user_id, since),
        ).fetchall()
    finally:
        conn.close()

def get_usage_stats(today, since):
    conn = get_conn()
    try:
        return conn.execute(
            """
            SELECT
              (SELECT COUNT(*) FROM users WHERE role='student') AS total_users,
              (SELECT COUNT(DISTINCT user_id) FROM usage WHERE date=?) AS active_today,
              (SELECT COALESCE(SUM(minutes_used), 0) FROM usage WHERE date=?) AS minutes_today,
              (SELECT COALESCE(SUM(minutes_used), 0) FROM usage WHERE date>=?) AS minutes_month
            """,
            (today, today, since),
        ).fetchone()
    finally:
        conn.close()
