"""
Typed events emitted by a rep session and the listener fan-out that delivers them.
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Type, Union

from ..core.interfaces import LiveRepSample, RepMetrics, ValidatedRep

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SetCompleted:
    """A set boundary was reached; carries the live samples the device reported."""
    exercise_id: str
    set_number: int
    reps: List[LiveRepSample]
    weight: Optional[float] = None
    frame_count: int = 0


@dataclass(frozen=True)
class ValidatedRepsReady:
    """Correction finished for a set; its count overrides the live count."""
    exercise_id: str
    set_number: int
    count: int
    reps: List[ValidatedRep]
    metrics: List[RepMetrics] = field(default_factory=list)


SessionEvent = Union[SetCompleted, ValidatedRepsReady]
Listener = Callable[[SessionEvent], None]


class EventFanout:
    """Fire-and-forget delivery to any number of independent listeners."""

    def __init__(self):
        self._listeners: List[tuple] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener,
                  event_type: Optional[Type] = None) -> Callable[[], None]:
        """Register a listener, optionally for one event type; returns an unsubscribe callable."""
        entry = (listener, event_type)
        with self._lock:
            self._listeners.append(entry)

        def unsubscribe():
            with self._lock:
                if entry in self._listeners:
                    self._listeners.remove(entry)

        return unsubscribe

    def emit(self, event: SessionEvent):
        with self._lock:
            listeners = list(self._listeners)
        for listener, event_type in listeners:
            if event_type is not None and not isinstance(event, event_type):
                continue
            try:
                listener(event)
            except Exception:
                logger.exception(f"Listener failed on {type(event).__name__}")
