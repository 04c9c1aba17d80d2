"""Lightweight best-effort event tracking."""
import logging
from collections import deque
from datetime import datetime, UTC
from typing import Any, Deque, Dict, Tuple

from wordrecall.monitoring import events_tracked

logger = logging.getLogger(__name__)


class EventTracker:
    """Records study events to the log and Prometheus.

    Tracking never raises: a failure here must not interrupt studying.
    """

    def __init__(self, max_events: int = 1000):
        self.events: Deque[Tuple[datetime, str, Dict[str, Any]]] = deque(maxlen=max_events)

    def track(self, event_type: str, **data: Any) -> None:
        """Track an event such as "start_session" or "spelling_submit"."""
        try:
            self.events.append((datetime.now(UTC), event_type, data))
            events_tracked.labels(event_type=event_type).inc()
            logger.debug(f"[analytics] {event_type} {data}")
        except Exception as e:
            logger.error(f"Error tracking event {event_type}: {e}")

    def count(self, event_type: str) -> int:
        return sum(1 for _, kind, _ in self.events if kind == event_type)
