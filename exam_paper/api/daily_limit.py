"""Per-user daily request cap for the teacher AI endpoint.

Counters live in process memory keyed by ``<user_id>-<YYYY-MM-DD>`` (UTC),
so a new day starts from zero. Keys older than ``retention_days`` are swept
on access. Each worker process counts on its own; running several instances
multiplies the effective limit.
"""
from __future__ import annotations

import threading
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, List, Tuple

from .question_errors import DailyLimitExceededError


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


class DailyRequestLimiter:
    def __init__(
        self,
        limit: int = 15,
        *,
        retention_days: int = 2,
        today: Callable[[], date] = utc_today,
    ):
        self.limit = max(1, int(limit))
        self.retention_days = max(1, int(retention_days))
        self._today = today
        self._counts: Dict[Tuple[str, date], int] = {}
        self._lock = threading.Lock()

    @staticmethod
    def key_for(user_id: str, day: date) -> str:
        return f"{user_id}-{day.isoformat()}"

    def _sweep(self, today: date) -> None:
        cutoff = today - timedelta(days=self.retention_days)
        stale = [key for key in self._counts if key[1] <= cutoff]
        for key in stale:
            self._counts.pop(key, None)

    def check_and_increment(self, user_id: str) -> int:
        """Count one request; returns the number used today including this one."""
        uid = str(user_id or "").strip() or "anonymous"
        today = self._today()
        with self._lock:
            self._sweep(today)
            key = (uid, today)
            used = self._counts.get(key, 0)
            if used >= self.limit:
                raise DailyLimitExceededError(
                    f"Daily AI generation limit reached ({self.limit}/day). Please try again tomorrow."
                )
            self._counts[key] = used + 1
            return used + 1

    def used_today(self, user_id: str) -> int:
        uid = str(user_id or "").strip() or "anonymous"
        with self._lock:
            return self._counts.get((uid, self._today()), 0)

    def tracked_keys(self) -> List[str]:
        with self._lock:
            return sorted(self.key_for(uid, day) for uid, day in self._counts)
