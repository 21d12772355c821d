"""
Observer registration for state-change and effect notifications
"""

import logging
from typing import Any, Callable, List

logger = logging.getLogger(__name__)

Observer = Callable[[Any], None]


class EventChannel:
    """Named notification channel with explicit subscribe/unsubscribe

    Observers are plain callables invoked synchronously with one payload
    argument, in subscription order. An observer that raises is logged and
    does not prevent delivery to the others.
    """

    def __init__(self, name: str):
        self.name = name
        self._observers: List[Observer] = []

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register an observer; returns a callable that removes it again"""
        self._observers.append(observer)

        def unsubscribe() -> None:
            self.unsubscribe(observer)

        return unsubscribe

    def unsubscribe(self, observer: Observer) -> bool:
        try:
            self._observers.remove(observer)
            return True
        except ValueError:
            return False

    def emit(self, payload: Any) -> None:
        for observer in list(self._observers):
            try:
                observer(payload)
            except Exception as e:
                logger.error(f"Observer on '{self.name}' failed: {e}")

    def clear(self) -> None:
        self._observers.clear()

    @property
    def observer_count(self) -> int:
        return len(self._observers)
