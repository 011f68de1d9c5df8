"""
Tests for the per-host play scheduler.
"""

import asyncio
from typing import Dict, List, Tuple

import pytest

from stagehand.connections.base import Connection, RunResult
from stagehand.engine.errors import ConnectionError
from stagehand.engine.inventory import Host
from stagehand.engine.playbook import Handler, ModuleKind, Play, Task
from stagehand.engine.results import HostState, TaskStatus
from stagehand.engine.scheduler import CONNECT_TASK, Scheduler


class Fleet:
    """Shared bookkeeping for a set of scripted hosts."""

    def __init__(self, fail: Dict[str, List[str]] = None, unreachable: Tuple[str, ...] = ()):
        self.fail = fail or {}
        self.unreachable = unreachable
        self.log: List[Tuple[str, str]] = []
        self.closed: List[str] = []
        self.running = 0
        self.peak = 0

    async def factory(self, host: Host, connect_timeout: float) -> Connection:
        if host.name in self.unreachable:
            raise ConnectionError(host.name, "Connection refused")
        return ScriptedConnection(host, self)

    def commands(self, host: str) -> List[str]:
        return [cmd for name, cmd in self.log if name == host]


class ScriptedConnection(Connection):
    """Runs nothing; fails commands listed for its host in the fleet."""

    def __init__(self, host: Host, fleet: Fleet):
        super().__init__(host)
        self.fleet = fleet

    async def connect(self) -> None:
        pass

    async def close(self) -> None:
        self.fleet.closed.append(self.host.name)

    async def put(self, content, remote_path, mode=None) -> None:
        raise OSError("no file transfer on this host")

    async def run(self, command, timeout=None, cwd=None) -> RunResult:
        self.fleet.log.append((self.host.name, command))
        self.fleet.running += 1
        self.fleet.peak = max(self.fleet.peak, self.fleet.running)
        try:
            if command.startswith("sleep"):
                await asyncio.sleep(float(command.split()[1]))
            else:
                await asyncio.sleep(0.01)
        finally:
            self.fleet.running -= 1
        if command in self.fleet.fail.get(self.host.name, []):
            return RunResult(rc=1, stdout="", stderr=f"{command}: failed")
        return RunResult(rc=0, stdout="", stderr="")


def cmd(line: str, **kwargs) -> Task:
    return Task(name=line, module=ModuleKind.COMMAND, args={"_raw_params": line}, **kwargs)


def hosts(*names: str) -> List[Host]:
    return [Host(n) for n in names]


class TestFailFast:
    """A failing task stops its own host only."""

    @pytest.mark.asyncio
    async def test_other_hosts_continue(self):
        fleet = Fleet(fail={"a": ["step2"]})
        play = Play(name="p", hosts="all", tasks=[cmd(f"step{i}") for i in range(1, 6)])

        result = await Scheduler(connection_factory=fleet.factory).run_play(play, hosts("a", "b"))

        assert fleet.commands("a") == ["step1", "step2"]
        assert fleet.commands("b") == [f"step{i}" for i in range(1, 6)]
        assert result.host_runs["a"].state == HostState.FAILED
        assert result.host_runs["b"].state == HostState.COMPLETED
        assert not result.success
        assert [r.task_name for r in result.failures()] == ["step2"]

    @pytest.mark.asyncio
    async def test_all_completed_is_success(self):
        fleet = Fleet()
        play = Play(name="p", hosts="all", tasks=[cmd("true")])

        result = await Scheduler(connection_factory=fleet.factory).run_play(play, hosts("a", "b"))

        assert result.success
        assert sorted(fleet.closed) == ["a", "b"]


class TestHandlers:
    """Notified handlers run once, after the task list."""

    def play(self, **kwargs) -> Play:
        restart = Handler(name="restart apache2", task=cmd("systemctl restart apache2"))
        tasks = kwargs.pop("tasks", None) or [
            cmd("one", notify=["restart apache2"]),
            cmd("two", notify=["restart apache2"]),
            cmd("three", notify=["restart apache2"]),
        ]
        return Play(name="p", hosts="all", tasks=tasks,
                    handlers={restart.name: restart}, **kwargs)

    @pytest.mark.asyncio
    async def test_runs_once_after_last_task(self):
        fleet = Fleet()

        result = await Scheduler(connection_factory=fleet.factory).run_play(self.play(), hosts("a"))

        assert fleet.commands("a") == ["one", "two", "three", "systemctl restart apache2"]
        handler_results = [r for r in result.host_runs["a"].results if r.handler]
        assert [r.task_name for r in handler_results] == ["restart apache2"]

    @pytest.mark.asyncio
    async def test_not_run_on_failed_host(self):
        fleet = Fleet(fail={"a": ["two"]})

        result = await Scheduler(connection_factory=fleet.factory).run_play(self.play(), hosts("a"))

        assert "systemctl restart apache2" not in fleet.commands("a")
        assert result.host_runs["a"].state == HostState.FAILED

    @pytest.mark.asyncio
    async def test_force_handlers(self):
        fleet = Fleet(fail={"a": ["two"]})
        play = self.play(force_handlers=True)

        result = await Scheduler(connection_factory=fleet.factory).run_play(play, hosts("a"))

        assert fleet.commands("a")[-1] == "systemctl restart apache2"
        assert result.host_runs["a"].state == HostState.FAILED

    @pytest.mark.asyncio
    async def test_handler_failure_fails_host(self):
        fleet = Fleet(fail={"a": ["systemctl restart apache2"]})

        result = await Scheduler(connection_factory=fleet.factory).run_play(self.play(), hosts("a"))

        run = result.host_runs["a"]
        assert run.state == HostState.FAILED
        assert run.failure.handler
        assert run.failure.task_name == "restart apache2"

    @pytest.mark.asyncio
    async def test_check_mode_does_not_notify(self):
        # command tasks are skipped in check mode, so nothing is notified
        fleet = Fleet()
        scheduler = Scheduler(connection_factory=fleet.factory, check_mode=True)

        result = await scheduler.run_play(self.play(), hosts("a"))

        assert fleet.commands("a") == []
        assert result.host_runs["a"].stats.skipped == 3


class TestFailures:
    """Connection, timeout and template failures become results."""

    @pytest.mark.asyncio
    async def test_unreachable_host(self):
        fleet = Fleet(unreachable=("a",))
        play = Play(name="p", hosts="all", tasks=[cmd("true")])

        result = await Scheduler(connection_factory=fleet.factory).run_play(play, hosts("a", "b"))

        failure = result.host_runs["a"].failure
        assert failure.status == TaskStatus.UNREACHABLE
        assert failure.task_name == CONNECT_TASK
        assert failure.error == "connection_error"
        assert result.host_runs["a"].state == HostState.FAILED
        assert result.host_runs["b"].state == HostState.COMPLETED

    @pytest.mark.asyncio
    async def test_unexpected_connect_error_stays_on_its_host(self):
        fleet = Fleet()

        async def factory(host, connect_timeout):
            if host.name == "w1":
                raise ValueError("invalid literal for int() with base 10: 'ssh'")
            return await fleet.factory(host, connect_timeout)

        play = Play(name="p", hosts="all", tasks=[cmd("true")])
        result = await Scheduler(connection_factory=factory).run_play(play, hosts("localhost", "w1"))

        failure = result.host_runs["w1"].failure
        assert failure.status == TaskStatus.UNREACHABLE
        assert "ValueError" in failure.msg
        assert result.host_runs["localhost"].state == HostState.COMPLETED
        assert fleet.commands("localhost") == ["true"]

    @pytest.mark.asyncio
    async def test_task_timeout(self):
        fleet = Fleet()
        play = Play(name="p", hosts="all", tasks=[cmd("sleep 5", timeout=0.05), cmd("after")])

        result = await Scheduler(connection_factory=fleet.factory).run_play(play, hosts("a"))

        failure = result.host_runs["a"].failure
        assert failure.status == TaskStatus.FAILED
        assert failure.error == "timeout"
        assert "after" not in fleet.commands("a")
        assert fleet.closed == ["a"]

    @pytest.mark.asyncio
    async def test_template_error(self):
        fleet = Fleet()
        play = Play(name="p", hosts="all", tasks=[cmd("echo {{ undefined_thing }}")])

        result = await Scheduler(connection_factory=fleet.factory).run_play(play, hosts("a"))

        failure = result.host_runs["a"].failure
        assert failure.error == "template_error"
        assert fleet.commands("a") == []

    @pytest.mark.asyncio
    async def test_variables_rendered(self):
        fleet = Fleet()
        play = Play(name="p", hosts="all", vars={"greeting": "hi"},
                    tasks=[cmd("echo {{ greeting }} {{ who }}")])
        host = Host("a", {"who": "there"})

        await Scheduler(connection_factory=fleet.factory).run_play(play, [host])

        assert fleet.commands("a") == ["echo hi there"]


class TestForks:
    """Concurrency is bounded by forks."""

    @pytest.mark.asyncio
    async def test_forks_bound(self):
        fleet = Fleet()
        play = Play(name="p", hosts="all", tasks=[cmd("sleep 0.05")])
        scheduler = Scheduler(forks=2, connection_factory=fleet.factory)

        result = await scheduler.run_play(play, hosts("a", "b", "c", "d", "e"))

        assert fleet.peak == 2
        assert result.success
        assert list(result.host_runs) == ["a", "b", "c", "d", "e"]

    @pytest.mark.asyncio
    async def test_results_streamed(self):
        fleet = Fleet()
        seen = []
        play = Play(name="p", hosts="all", tasks=[cmd("one"), cmd("two")])
        scheduler = Scheduler(connection_factory=fleet.factory, on_result=seen.append)

        await scheduler.run_play(play, hosts("a"))

        assert [r.task_name for r in seen] == ["one", "two"]


class TestTextReplaceAcrossHosts:
    """A missing target line fails only the host whose file lacks it."""

    @pytest.mark.asyncio
    async def test_no_match_on_one_host(self, tmp_path):
        conf_a = tmp_path / "a.conf"
        conf_b = tmp_path / "b.conf"
        conf_a.write_text("Listen 80\n")
        conf_b.write_text("Listen 80\nDirectoryIndex index.php\n")
        play = Play(name="p", hosts="all", tasks=[
            Task(
                name="Set DirectoryIndex",
                module=ModuleKind.TEXT_REPLACE,
                args={"path": "{{ conf }}", "regexp": "^DirectoryIndex",
                      "line": "DirectoryIndex index.html"},
            ),
            cmd("echo after"),
        ])
        a = Host("a", {"connection": "local", "conf": str(conf_a)})
        b = Host("b", {"connection": "local", "conf": str(conf_b)})

        result = await Scheduler().run_play(play, [a, b])

        failure = result.host_runs["a"].failure
        assert result.host_runs["a"].state == HostState.FAILED
        assert failure.task_name == "Set DirectoryIndex"
        assert failure.error == "no_match"
        assert len(result.host_runs["a"].results) == 1

        run_b = result.host_runs["b"]
        assert run_b.state == HostState.COMPLETED
        assert [r.status for r in run_b.results] == [TaskStatus.CHANGED, TaskStatus.CHANGED]
        assert conf_b.read_text() == "Listen 80\nDirectoryIndex index.html\n"
        assert conf_a.read_text() == "Listen 80\n"
