"""
Stagehand Scheduler

Async execution scheduler with fork-style parallelism using asyncio.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from stagehand.engine.context import HostContext
from stagehand.engine.errors import ConnectionError, StagehandError
from stagehand.engine.handlers import handlers_to_run
from stagehand.engine.inventory import Host
from stagehand.engine.playbook import Play, Task
from stagehand.engine.results import HostState, PlayResult, TaskResult, TaskStatus
from stagehand.engine.templating import date_time_vars, render_recursive
from stagehand.modules.base import execute

logger = logging.getLogger(__name__)

# Task name used for the result of a failed connection attempt
CONNECT_TASK = "connect"

ConnectionFactory = Callable[[Host, float], Awaitable[Any]]
ResultCallback = Callable[[TaskResult], None]


async def _default_connection_factory(host: Host, connect_timeout: float) -> Any:
    from stagehand.connections.base import connect
    return await connect(host, connect_timeout=connect_timeout)


class Scheduler:
    """
    Async scheduler for play execution.

    Uses asyncio with a semaphore to limit concurrency (like Ansible's
    forks). Each host runs its task list independently ("free" strategy):
    a host moves pending -> running -> completed, or to failed on its first
    failing task. Other hosts carry on regardless.
    """

    def __init__(
        self,
        forks: int = 5,
        task_timeout: float = 300,
        connect_timeout: float = 30,
        check_mode: bool = False,
        connection_factory: Optional[ConnectionFactory] = None,
        on_result: Optional[ResultCallback] = None,
    ):
        """
        Initialize the scheduler.

        Args:
            forks: Maximum number of hosts running at once
            task_timeout: Default per-task timeout in seconds
            connect_timeout: Timeout for opening a host connection
            check_mode: Report what would change without changing it
            connection_factory: Async callable (host, connect_timeout) -> Connection
            on_result: Called with every TaskResult as soon as it is known
        """
        self.forks = max(1, forks)
        self.task_timeout = task_timeout
        self.connect_timeout = connect_timeout
        self.check_mode = check_mode
        self.connection_factory = connection_factory or _default_connection_factory
        self.on_result = on_result

    async def run_play(
        self,
        play: Play,
        hosts: List[Host],
        extra_vars: Optional[Dict[str, Any]] = None,
    ) -> PlayResult:
        """
        Run a single play on ``hosts``.

        Returns:
            PlayResult with one HostRun per host, in inventory order
        """
        semaphore = asyncio.Semaphore(self.forks)
        play_result = PlayResult(play_name=play.name, hosts=[h.name for h in hosts])

        contexts = []
        for host in hosts:
            ctx = HostContext(
                host=host,
                vars={**play.vars, **(extra_vars or {})},
                check_mode=self.check_mode,
                become=play.become,
                become_user=play.become_user,
                become_method=play.become_method,
            )
            play_result.host_runs[host.name] = ctx.run
            contexts.append(ctx)

        async def run_on_host(ctx: HostContext) -> None:
            async with semaphore:
                await self._run_host(play, ctx)

        await asyncio.gather(*(run_on_host(ctx) for ctx in contexts))
        return play_result

    async def _run_host(self, play: Play, ctx: HostContext) -> None:
        """Run every task, then the notified handlers, on one host."""
        ctx.state = HostState.RUNNING
        logger.info("[%s] starting play %r", ctx.host.name, play.name)

        try:
            ctx.connection = await self.connection_factory(ctx.host, self.connect_timeout)
        except Exception as e:
            if isinstance(e, StagehandError):
                msg, kind = str(e), e.kind
            else:
                logger.exception("[%s] unexpected error while connecting", ctx.host.name)
                msg, kind = f"{type(e).__name__}: {e}", ConnectionError.kind
            self._record(ctx, TaskResult(
                host=ctx.host.name,
                task_name=CONNECT_TASK,
                status=TaskStatus.UNREACHABLE,
                msg=msg,
                error=kind,
            ))
            ctx.state = HostState.FAILED
            return

        try:
            for task in play.tasks:
                result = await self._run_task(task, ctx)
                self._record(ctx, result)
                if result.failed:
                    ctx.state = HostState.FAILED
                    logger.info("[%s] failed at task %r", ctx.host.name, task.name)
                    break
                if result.changed:
                    for name in task.notify:
                        ctx.notifications.notify(name)

            await self._run_handlers(play, ctx)

            if not ctx.failed:
                ctx.state = HostState.COMPLETED
        finally:
            await self._close(ctx)

    async def _run_handlers(self, play: Play, ctx: HostContext) -> None:
        """Run each pending handler once, in first-notified order."""
        if ctx.failed and not play.force_handlers:
            skipped = ctx.notifications.drain()
            if skipped:
                logger.info(
                    "[%s] not running handlers %s on failed host",
                    ctx.host.name, ", ".join(skipped),
                )
            return

        for handler in handlers_to_run(play, ctx.notifications):
            result = await self._run_task(handler.task, ctx)
            result.task_name = handler.name
            result.handler = True
            self._record(ctx, result)
            if result.failed:
                ctx.state = HostState.FAILED
                break

    async def _run_task(self, task: Task, ctx: HostContext) -> TaskResult:
        """Render, execute and time-bound one task on one host."""
        timeout = task.timeout or self.task_timeout
        ctx.timeout = timeout
        variables = ctx.get_vars()
        variables['stagehand_date_time'] = date_time_vars()

        try:
            params = render_recursive(task.args, variables)
            return await asyncio.wait_for(execute(task, ctx, params), timeout=timeout)
        except StagehandError as e:
            return self._failed(ctx, task, str(e), e.kind)
        except asyncio.TimeoutError:
            return self._failed(ctx, task, f"task timed out after {timeout}s", "timeout")
        except Exception as e:
            logger.exception("[%s] unexpected error in task %r", ctx.host.name, task.name)
            return self._failed(ctx, task, f"{type(e).__name__}: {e}", "internal_error")

    def _failed(self, ctx: HostContext, task: Task, msg: str, kind: str) -> TaskResult:
        return TaskResult(
            host=ctx.host.name,
            task_name=task.name,
            status=TaskStatus.FAILED,
            msg=msg,
            error=kind,
        )

    def _record(self, ctx: HostContext, result: TaskResult) -> None:
        ctx.run.add(result)
        if self.on_result is not None:
            self.on_result(result)

    async def _close(self, ctx: HostContext) -> None:
        """Close the host's connection."""
        if ctx.connection is None:
            return
        try:
            await ctx.connection.close()
        except OSError as e:
            logger.warning("[%s] error closing connection: %s", ctx.host.name, e)
        ctx.connection = None
