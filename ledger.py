"""
Per-user, per-day usage ledger.

Answers "how much allowance is left today" and records consumption after a
successful upstream call. The daily row is only ever written through
``db.add_usage``, a single insert-or-accumulate statement, so concurrent
accruals for the same user and day never lose updates. Admission and accrual
are separate steps: concurrent requests may overshoot the limit by roughly one
request each (soft quota).
"""
import logging
import math
import sqlite3
from dataclasses import dataclass

import db

MIN_MINUTES_PER_REQUEST = 0.1
TOKENS_PER_WORD = 1.3
WORDS_PER_MINUTE = 200


class LedgerError(Exception):
    pass


class UserNotFound(LedgerError):
    def __init__(self, user_id):
        super().__init__(f"no active user with id {user_id}")
        self.user_id = user_id


class StorageFailure(LedgerError):
    pass


@dataclass(frozen=True)
class Balance:
    limit: float
    used: float
    messages: int = 0

    @property
    def remaining(self) -> float:
        return self.limit - self.used


@dataclass(frozen=True)
class Admission:
    admitted: bool
    balance: Balance

    @property
    def remaining(self) -> float:
        return max(0.0, self.balance.remaining) if self.admitted else 0.0


@dataclass(frozen=True)
class Accrual:
    minutes: float
    used_after: float
    messages_after: int


def get_remaining(user_id, date) -> Balance:
    """Read-only view of ``user_id``'s allowance for ``date`` (``YYYY-MM-DD``)."""
    try:
        row = db.get_user_usage(user_id, date)
    except sqlite3.Error as e:
        raise StorageFailure(str(e)) from e
    if row is None:
        raise UserNotFound(user_id)
    return Balance(
        limit=float(row["daily_minutes"]),
        used=float(row["minutes_used"]),
        messages=int(row["messages_count"]),
    )


def check_and_admit(user_id, date) -> Admission:
    balance = get_remaining(user_id, date)
    if balance.used >= balance.limit:
        logging.info(
            "Quota exhausted for user %s on %s (%.2f/%.2f)",
            user_id, date, balance.used, balance.limit,
        )
        return Admission(admitted=False, balance=balance)
    return Admission(admitted=True, balance=balance)


def parse_minutes(value):
    """Positive, finite minutes as a float; None for anything else (bools, NaN, inf, <= 0)."""
    if isinstance(value, bool):
        return None
    try:
        v = float(value)
    except (TypeError, ValueError):
        return None
    return v if math.isfinite(v) and v > 0 else None


def _tokens(value):
    try:
        n = int(value or 0)
    except (TypeError, ValueError):
        return 0
    return max(0, n)


def estimate_consumption(prompt_tokens, completion_tokens) -> float:
    """
    Minutes of "spoken/read" content for a request, from upstream token counts.

    Roughly 1.3 tokens per word and 200 words per minute, never less than
    0.1 minutes so every request is accounted.
    """
    words = (_tokens(prompt_tokens) + _tokens(completion_tokens)) / TOKENS_PER_WORD
    return max(MIN_MINUTES_PER_REQUEST, words / WORDS_PER_MINUTE)


def accrue(user_id, date, minutes) -> Accrual:
    amount = parse_minutes(minutes)
    if amount is None:
        raise ValueError(f"accrued minutes must be positive and finite, got {minutes!r}")
    try:
        row = db.add_usage(user_id, date, amount)
    except sqlite3.Error as e:
        raise StorageFailure(str(e)) from e
    return Accrual(
        minutes=amount,
        used_after=float(row["minutes_used"]),
        messages_after=int(row["messages_count"]),
    )
