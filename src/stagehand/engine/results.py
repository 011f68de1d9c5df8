"""
Stagehand Result Classes

Data structures for task, host, play, and playbook execution results.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
import json

from stagehand.engine.errors import ExitCode


class TaskStatus(Enum):
    """Status of a task execution."""
    OK = "ok"
    CHANGED = "changed"
    FAILED = "failed"
    SKIPPED = "skipped"
    UNREACHABLE = "unreachable"


class HostState(Enum):
    """Lifecycle of a host within one play."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class TaskResult:
    """Result of executing a single task on a single host."""

    host: str
    task_name: str
    status: TaskStatus
    msg: str = ""
    rc: int = 0
    stdout: str = ""
    stderr: str = ""
    # Error kind (see StagehandError.kind) when the task failed
    error: Optional[str] = None
    handler: bool = False

    @property
    def changed(self) -> bool:
        return self.status == TaskStatus.CHANGED

    @property
    def failed(self) -> bool:
        """Check if the task failed."""
        return self.status in (TaskStatus.FAILED, TaskStatus.UNREACHABLE)

    @property
    def ok(self) -> bool:
        """Check if the task succeeded (ok or changed)."""
        return self.status in (TaskStatus.OK, TaskStatus.CHANGED)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON output."""
        result: Dict[str, Any] = {
            "host": self.host,
            "task": self.task_name,
            "status": self.status.value,
            "changed": self.changed,
        }
        if self.handler:
            result["handler"] = True
        if self.rc:
            result["rc"] = self.rc
        if self.stdout:
            result["stdout"] = self.stdout
        if self.stderr:
            result["stderr"] = self.stderr
        if self.msg:
            result["msg"] = self.msg
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class HostStats:
    """Statistics for a single host across all tasks."""

    host: str
    ok: int = 0
    changed: int = 0
    failed: int = 0
    skipped: int = 0
    unreachable: int = 0

    def record(self, status: TaskStatus) -> None:
        """Record a task result status."""
        if status == TaskStatus.OK:
            self.ok += 1
        elif status == TaskStatus.CHANGED:
            self.changed += 1
        elif status == TaskStatus.FAILED:
            self.failed += 1
        elif status == TaskStatus.SKIPPED:
            self.skipped += 1
        elif status == TaskStatus.UNREACHABLE:
            self.unreachable += 1

    def merge(self, other: 'HostStats') -> None:
        """Merge another HostStats into this one."""
        self.ok += other.ok
        self.changed += other.changed
        self.failed += other.failed
        self.skipped += other.skipped
        self.unreachable += other.unreachable

    def to_dict(self) -> Dict[str, Any]:
        return {
            "host": self.host,
            "ok": self.ok,
            "changed": self.changed,
            "failed": self.failed,
            "skipped": self.skipped,
            "unreachable": self.unreachable,
        }


@dataclass
class HostRun:
    """Ordered results and lifecycle state of one host in one play."""

    host: str
    state: HostState = HostState.PENDING
    results: List[TaskResult] = field(default_factory=list)

    def add(self, result: TaskResult) -> None:
        self.results.append(result)

    @property
    def failure(self) -> Optional[TaskResult]:
        """The result that failed this host, if any."""
        for result in self.results:
            if result.failed:
                return result
        return None

    @property
    def stats(self) -> HostStats:
        stats = HostStats(self.host)
        for result in self.results:
            stats.record(result.status)
        return stats


@dataclass
class PlayResult:
    """Result of executing a single play."""

    play_name: str
    hosts: List[str]
    host_runs: Dict[str, HostRun] = field(default_factory=dict)

    @property
    def task_results(self) -> List[TaskResult]:
        """All task results, grouped by host."""
        return [r for run in self.host_runs.values() for r in run.results]

    @property
    def host_stats(self) -> Dict[str, HostStats]:
        return {name: run.stats for name, run in self.host_runs.items()}

    @property
    def success(self) -> bool:
        """A play succeeds only if every host reached ``completed``."""
        return all(run.state == HostState.COMPLETED for run in self.host_runs.values())

    def failures(self) -> List[TaskResult]:
        """The failing result of every failed host."""
        failed = []
        for run in self.host_runs.values():
            if run.failure is not None:
                failed.append(run.failure)
        return failed

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "play": self.play_name,
            "hosts": self.hosts,
            "host_states": {h: run.state.value for h, run in self.host_runs.items()},
            "tasks": [r.to_dict() for r in self.task_results],
            "stats": {h: s.to_dict() for h, s in self.host_stats.items()},
        }


@dataclass
class PlaybookResult:
    """Result of executing an entire playbook run."""

    playbook_path: str
    play_results: List[PlayResult] = field(default_factory=list)

    def add_play_result(self, result: PlayResult) -> None:
        self.play_results.append(result)

    def get_final_stats(self) -> Dict[str, HostStats]:
        """Get aggregated stats for all hosts across all plays."""
        final_stats: Dict[str, HostStats] = {}
        for play_result in self.play_results:
            for host, stats in play_result.host_stats.items():
                if host not in final_stats:
                    final_stats[host] = HostStats(host)
                final_stats[host].merge(stats)
        return final_stats

    def failures(self) -> List[TaskResult]:
        return [r for play in self.play_results for r in play.failures()]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "playbook": self.playbook_path,
            "success": self.success,
            "plays": [p.to_dict() for p in self.play_results],
            "stats": {h: s.to_dict() for h, s in self.get_final_stats().items()},
            "failures": [r.to_dict() for r in self.failures()],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @property
    def success(self) -> bool:
        """Check if every play succeeded."""
        return all(p.success for p in self.play_results)

    @property
    def exit_code(self) -> int:
        return ExitCode.SUCCESS if self.success else ExitCode.HOST_FAILED
