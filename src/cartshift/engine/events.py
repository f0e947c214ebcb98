"""
Status channel: fan-out of migration status and log lines to observers.
"""

import logging
import threading
from typing import Callable, List, Optional

from ..models.migration import ChannelMessage, MigrationStatus

logger = logging.getLogger(__name__)

Subscriber = Callable[[ChannelMessage], None]


class StatusChannel:
    """
    Broadcasts ChannelMessages to every subscriber.

    Subscribers are called on the publishing thread. A subscriber that
    raises is logged and skipped; the others still receive the message.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback. Returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, message: ChannelMessage) -> None:
        with self._lock:
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(message)
            except Exception as e:
                logger.error(f"Status subscriber failed on {message.event} message: {e}")

    def publish_status(self, status: MigrationStatus) -> None:
        self.publish(ChannelMessage.for_status(status))

    def publish_log(self, project_id: Optional[str], line: str) -> None:
        self.publish(ChannelMessage.for_log(project_id, line))


class RunLogger:
    """
    Log sink for one migration run.

    Each line goes to the standard logger and to a callback that records it
    in the run status and broadcasts it.
    """

    def __init__(self, on_line: Callable[[str], None], run_logger: Optional[logging.Logger] = None):
        self._on_line = on_line
        self._logger = run_logger or logging.getLogger("cartshift.migration")

    def info(self, line: str) -> None:
        self._logger.info(line)
        self._on_line(line)

    def warning(self, line: str) -> None:
        self._logger.warning(line)
        self._on_line(line)

    def error(self, line: str) -> None:
        self._logger.error(line)
        self._on_line(f"Error: {line}")
