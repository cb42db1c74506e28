from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EventBus:
    """Synchronous in-process event bus keyed by event class.

    A handler subscribed to a class also receives instances of its
    subclasses. The subscriber table is copy-on-write, so ``emit`` iterates a
    stable snapshot and handlers may subscribe or unsubscribe while running.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: Dict[Type[Any], Tuple[Callable[[Any], None], ...]] = {}

    def subscribe(self, event_type: Type[T], handler: Callable[[T], None]) -> Callable[[], bool]:
        """Register ``handler``; the returned callable removes it again."""
        with self._lock:
            self._subscribers[event_type] = self._subscribers.get(event_type, ()) + (handler,)
        return lambda: self.unsubscribe(event_type, handler)

    def unsubscribe(self, event_type: Type[T], handler: Callable[[T], None]) -> bool:
        with self._lock:
            handlers = list(self._subscribers.get(event_type, ()))
            if handler not in handlers:
                return False
            handlers.remove(handler)
            if handlers:
                self._subscribers[event_type] = tuple(handlers)
            else:
                del self._subscribers[event_type]
            return True

    def emit(self, event: Any) -> int:
        """Deliver ``event`` to every matching handler; returns how many raised.

        A failing handler is logged and skipped; the remaining handlers still run.
        """
        with self._lock:
            targets = [
                h
                for event_type, handlers in self._subscribers.items()
                if isinstance(event, event_type)
                for h in handlers
            ]
        name = type(event).__name__
        logger.debug("Emitting %s to %d handler(s)", name, len(targets))
        failures = 0
        for handler in targets:
            try:
                handler(event)
            except Exception:
                failures += 1
                logger.exception("Handler %r failed on %s", handler, name)
        return failures


@dataclass(frozen=True)
class TransactionCompleted:
    shop_id: str
    actor_id: str
    action: str  # "buy" or "sell"
    material: str
    quantity: int
    total: float


@dataclass(frozen=True)
class TransactionFailed:
    shop_id: str
    actor_id: str
    action: str
    material: str
    quantity: int
    kind: str
    message: str
    available: Optional[int] = None
