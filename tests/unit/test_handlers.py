"""
Tests for handler notification queueing.
"""

import pytest

from stagehand.engine.handlers import NotificationQueue, handlers_to_run
from stagehand.engine.playbook import Handler, ModuleKind, Play, Task


def make_handler(name, listen=None):
    task = Task(name=name, module=ModuleKind.COMMAND, args={"_raw_params": "true"})
    return Handler(name=name, task=task, listen=listen or [])


class TestNotificationQueue:
    """Test the per-host deferred event queue."""

    def test_notify_records_once(self):
        queue = NotificationQueue()
        assert queue.notify("restart apache2") is True
        assert queue.notify("restart apache2") is False
        assert queue.notify("restart apache2") is False
        assert queue.pending == ["restart apache2"]
        assert len(queue) == 1

    def test_first_trigger_order(self):
        queue = NotificationQueue()
        for name in ["b", "a", "b", "c", "a"]:
            queue.notify(name)
        assert queue.drain() == ["b", "a", "c"]

    def test_drain_empties(self):
        queue = NotificationQueue()
        queue.notify("a")
        assert queue.drain() == ["a"]
        assert queue.drain() == []
        assert len(queue) == 0

    def test_queues_are_independent(self):
        web1, web2 = NotificationQueue(), NotificationQueue()
        web1.notify("restart")
        assert web2.pending == []


class TestHandlersToRun:
    """Mapping queued notifications onto the play's handlers."""

    @pytest.fixture
    def play(self):
        restart = make_handler("restart apache2", listen=["web changed"])
        reload = make_handler("reload nginx")
        return Play(
            name="web",
            hosts="all",
            handlers={restart.name: restart, reload.name: reload},
        )

    def test_resolves_in_queue_order(self, play):
        queue = NotificationQueue()
        queue.notify("reload nginx")
        queue.notify("restart apache2")

        names = [h.name for h in handlers_to_run(play, queue)]
        assert names == ["reload nginx", "restart apache2"]
        assert len(queue) == 0

    def test_listen_topic_and_name_run_once(self, play):
        queue = NotificationQueue()
        queue.notify("web changed")
        queue.notify("restart apache2")

        names = [h.name for h in handlers_to_run(play, queue)]
        assert names == ["restart apache2"]
