"""Storefront interaction tracking (product views, add-to-cart)."""
import threading
import time
from typing import Callable, Dict, Optional, Tuple

from pymongo.database import Database

from database import create_document, to_object_id
from schemas import AnalyticsEvent, AnalyticsEventType, TrackEventRequest

RATE_LIMIT_WINDOW_SECONDS = 60.0
RATE_LIMIT_MAX_EVENTS = 50


class RateLimiter:
    """Fixed-window event counter per client key."""

    def __init__(
        self,
        max_events: int = RATE_LIMIT_MAX_EVENTS,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_events = max_events
        self.window_seconds = window_seconds
        self._clock = clock
        self._buckets: Dict[str, Tuple[int, float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._buckets)

    def _sweep(self, now: float) -> None:
        # at most once per window; callers hold the lock
        if now - self._last_sweep <= self.window_seconds:
            return
        self._buckets = {
            key: bucket for key, bucket in self._buckets.items() if now - bucket[1] <= self.window_seconds
        }
        self._last_sweep = now

    def hit(self, key: str) -> bool:
        """Count one event for ``key``; True when the key is over its budget."""
        now = self._clock()
        with self._lock:
            self._sweep(now)
            count, window_start = self._buckets.get(key, (0, now))
            if now - window_start > self.window_seconds:
                count, window_start = 0, now
            count += 1
            self._buckets[key] = (count, window_start)
        return count > self.max_events


def parse_event_type(value: Optional[str]) -> Optional[AnalyticsEventType]:
    try:
        return AnalyticsEventType((value or "").strip().lower())
    except ValueError:
        return None


def record_event(
    db: Database,
    event_type: AnalyticsEventType,
    payload: TrackEventRequest,
    client_ip: str,
) -> str:
    session_id = (payload.session_id or "").strip()[:128] or f"anon-{client_ip}"
    product_id = payload.product_id if to_object_id(payload.product_id) is not None else None
    event = AnalyticsEvent(
        type=event_type,
        product_id=product_id,
        session_id=session_id,
        user_id=payload.user_id or None,
    )
    return create_document(db, "analyticsevent", event)
