"""Cost/date derivation and the read/add surface over a history store."""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .exceptions import PersistenceError, ValidationError
from .models import HistoryDay, TranscriptionData, TranscriptionRecord
from .storage import HistoryStore

COST_PER_HOUR_USD = 0.04
DATE_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(timestamp: datetime) -> datetime:
    """Return ``timestamp`` in UTC, treating naive values as already UTC."""

    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)


def compute_cost(duration_seconds: float) -> float:
    return duration_seconds / 3600 * COST_PER_HOUR_USD


def utc_date(timestamp: datetime) -> str:
    return as_utc(timestamp).strftime("%Y-%m-%d")


def build_record(
    text: str,
    duration_seconds: float,
    timestamp: Optional[datetime] = None,
    date: Optional[str] = None,
    clock: Callable[[], datetime] = utcnow,
) -> TranscriptionData:
    """Construct a history entry, deriving the day bucket and the cost."""

    moment = as_utc(timestamp) if timestamp is not None else as_utc(clock())
    return TranscriptionData(
        text=text,
        duration_seconds=duration_seconds,
        cost_usd=compute_cost(duration_seconds),
        timestamp=moment,
        date=date or utc_date(moment),
    )


def validate_date(date: str) -> str:
    # Format only: "2025-13-01" is accepted and simply matches nothing.
    if not isinstance(date, str) or not DATE_PATTERN.fullmatch(date):
        raise ValidationError("Invalid date format. Use YYYY-MM-DD")
    return date


def save_best_effort(store: HistoryStore, data: TranscriptionData) -> Optional[str]:
    """Insert ``data`` and return its id, or log and return None on failure."""

    try:
        return store.insert(data)
    except PersistenceError as exc:
        logging.warning("Failed to save transcription to history: %s", exc)
        return None


class HistoryService:
    """Day-bucketed views over a history store, plus manual entry."""

    def __init__(self, store: HistoryStore) -> None:
        self.store = store

    def list_days(self) -> List[HistoryDay]:
        return list(self.store.aggregate_by_date())

    def list_by_date(self, date: str) -> List[TranscriptionRecord]:
        return list(self.store.query_by_date(validate_date(date)))

    def add(
        self,
        text: Optional[str],
        duration_seconds: Optional[float],
        timestamp: Optional[datetime] = None,
        date: Optional[str] = None,
    ) -> str:
        if not text or duration_seconds is None:
            raise ValidationError("Missing required fields: text, durationSeconds")
        if not math.isfinite(duration_seconds):
            raise ValidationError("durationSeconds must be a finite number")
        if duration_seconds < 0:
            raise ValidationError("durationSeconds must not be negative")
        return self.store.insert(build_record(text, duration_seconds, timestamp=timestamp, date=date))
