"""
Stagehand Handler Notifications

Each host run owns one NotificationQueue. Tasks that report ``changed``
push their notify targets into it; once the host's task list is done the
queue is drained and every pending handler runs exactly once.
"""

from typing import List

from stagehand.engine.playbook import Handler, Play


class NotificationQueue:
    """Deferred, deduplicated handler events for one host."""

    def __init__(self) -> None:
        self._pending: List[str] = []

    def notify(self, handler_name: str) -> bool:
        """Queue a handler. Returns False if it was already pending."""
        if handler_name in self._pending:
            return False
        self._pending.append(handler_name)
        return True

    def drain(self) -> List[str]:
        """Pending handler names in first-trigger order; empties the queue."""
        pending, self._pending = self._pending, []
        return pending

    @property
    def pending(self) -> List[str]:
        return list(self._pending)

    def __len__(self) -> int:
        return len(self._pending)


def handlers_to_run(play: Play, queue: NotificationQueue) -> List[Handler]:
    """Drain ``queue`` into the play's handlers, one entry per handler."""
    handlers: List[Handler] = []
    for notification in queue.drain():
        handler = play.find_handler(notification)
        # A handler reachable through several listen topics still runs once
        if handler is not None and handler not in handlers:
            handlers.append(handler)
    return handlers
