"""
Cache event notification for Frache.

Listeners are plain callables invoked synchronously, in subscription order,
with a CacheEvent. A failing listener is logged and never affects the cache
operation that emitted the event.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..logging_config import get_logger


class CacheEventType(str, Enum):
    """Cache event types."""
    HIT = "hit"
    MISS = "miss"
    SET = "set"
    DELETE = "delete"
    CLEAR = "clear"
    ERROR = "error"
    WARMUP = "warmup"


class WarmupStatus(str, Enum):
    """Warmup task lifecycle stages."""
    REGISTERED = "registered"
    UNREGISTERED = "unregistered"
    QUEUED = "queued"
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRY_SCHEDULED = "retry_scheduled"


@dataclass
class CacheEvent:
    """A single notification delivered to listeners."""
    type: CacheEventType
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    key: Optional[str] = None
    namespace: Optional[str] = None
    status: Optional[WarmupStatus] = None
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[BaseException] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type.value,
            'timestamp': self.timestamp.isoformat(),
            'key': self.key,
            'namespace': self.namespace,
            'status': self.status.value if self.status else None,
            'data': self.data,
            'error': str(self.error) if self.error else None,
        }


EventListener = Callable[[CacheEvent], None]


class EventBus:
    """Ordered observer list for cache events."""

    def __init__(self):
        self.logger = get_logger(__name__, 'event_bus')
        self._listeners: List[Tuple[Optional[CacheEventType], EventListener]] = []

    def subscribe(self, listener: EventListener, event_type: Optional[CacheEventType] = None) -> None:
        """Register a listener for one event type, or for every event when None."""
        self._listeners.append((event_type, listener))

    def unsubscribe(self, listener: EventListener, event_type: Optional[CacheEventType] = None) -> bool:
        for index, (registered_type, registered) in enumerate(self._listeners):
            if registered == listener and registered_type == event_type:
                del self._listeners[index]
                return True
        return False

    def emit(self, event: CacheEvent) -> None:
        for event_type, listener in list(self._listeners):
            if event_type is not None and event_type != event.type:
                continue
            try:
                listener(event)
            except Exception as e:
                self.logger.error(
                    f"Cache event listener failed for {event.type.value}: {e}",
                    operation="emit",
                    event_type=event.type.value
                )

    def clear(self) -> None:
        self._listeners.clear()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
