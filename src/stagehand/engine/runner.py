"""
Stagehand Playbook Runner

High-level runner that coordinates inventory, playbook parsing,
scheduling, and output.
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from stagehand.config import RunConfig
from stagehand.engine.errors import ExitCode, ParseError, StagehandError
from stagehand.engine.inventory import Host, InventoryManager
from stagehand.engine.playbook import Play, PlaybookParser, resolve_hosts
from stagehand.engine.results import HostStats, PlaybookResult, TaskResult
from stagehand.engine.scheduler import ConnectionFactory, Scheduler

logger = logging.getLogger(__name__)

GREEN = '\033[32m'
YELLOW = '\033[33m'
RED = '\033[31m'
CYAN = '\033[36m'
RESET = '\033[0m'

STATUS_COLORS = {
    'ok': GREEN,
    'changed': YELLOW,
    'failed': RED,
    'skipped': CYAN,
    'unreachable': RED,
}


class PlaybookRunner:
    """
    High-level playbook runner.

    Coordinates:
    - Inventory loading and host selection
    - Playbook parsing and validation, all before any host is touched
    - Play execution through the Scheduler
    - Output formatting
    """

    def __init__(
        self,
        inventory_source: str,
        playbook_paths: List[str],
        config: Optional[RunConfig] = None,
        connection_factory: Optional[ConnectionFactory] = None,
    ):
        self.inventory_source = inventory_source
        self.playbook_paths = playbook_paths
        self.config = config or RunConfig()
        self.json_output = self.config.json_output
        self.connection_factory = connection_factory

        self.inventory: Optional[InventoryManager] = None
        self.scheduler = Scheduler(
            forks=self.config.forks,
            task_timeout=self.config.task_timeout,
            connect_timeout=self.config.connect_timeout,
            check_mode=self.config.check_mode,
            connection_factory=connection_factory,
            on_result=self._print_host_result,
        )

    def run(self) -> int:
        """
        Run playbooks synchronously.

        Returns:
            Exit code (0=success, 1=error, 2=host failures, 3=parse error, 130=interrupted)
        """
        try:
            result = asyncio.run(self.run_async())
        except StagehandError as e:
            self._report_error(e.kind, str(e), e.exit_code)
            return e.exit_code
        except KeyboardInterrupt:
            self._report_error("interrupted", "Execution interrupted", ExitCode.KEYBOARD_INTERRUPT)
            return ExitCode.KEYBOARD_INTERRUPT

        if self.json_output:
            print(result.to_json())

        return result.exit_code

    def load(self) -> List[Tuple[str, Play, List[Host]]]:
        """
        Parse the inventory and every playbook, resolving each play's hosts.

        Raises:
            ParseError: On the first invalid file, play, or host pattern
        """
        self.inventory = InventoryManager()
        self.inventory.parse(self.inventory_source)

        limited = None
        if self.config.limit:
            if not self.inventory.has_pattern(self.config.limit):
                raise ParseError(f"--limit matches unknown hosts or groups: {self.config.limit}")
            limited = {h.name for h in self.inventory.get_hosts(self.config.limit)}

        loaded = []
        for playbook_path in self.playbook_paths:
            for play in PlaybookParser(playbook_path).parse():
                hosts = resolve_hosts(play, self.inventory)
                if limited is not None:
                    hosts = [h for h in hosts if h.name in limited]
                loaded.append((playbook_path, play, hosts))
        return loaded

    async def run_async(self) -> PlaybookResult:
        """Load everything, then run the plays in order."""
        loaded = self.load()

        playbook_result = PlaybookResult(playbook_path=", ".join(self.playbook_paths))
        current_path = None

        for playbook_path, play, hosts in loaded:
            if playbook_path != current_path:
                current_path = playbook_path
                self._print_header(f"\nPLAYBOOK: {Path(playbook_path).name}")

            self._print_play(play)
            if not hosts:
                self._print_warning(f"No hosts matched '{play.hosts}', skipping play")
                continue

            play_result = await self.scheduler.run_play(
                play, hosts, extra_vars=self.config.extra_vars,
            )
            playbook_result.add_play_result(play_result)

        self._print_recap(playbook_result.get_final_stats())
        self._print_failures(playbook_result.failures())
        return playbook_result

    # Output methods (suppressed when json_output is True)
    def _print_header(self, msg: str) -> None:
        if not self.json_output:
            print(msg)

    def _print_play(self, play: Play) -> None:
        """Print play banner."""
        if not self.json_output:
            mode = " (check mode)" if self.config.check_mode else ""
            print(f"\nPLAY [{play.name}]{mode} " + "*" * 50)

    def _print_host_result(self, result: TaskResult) -> None:
        """Print one task result as it arrives."""
        if self.json_output:
            return

        status = result.status.value
        color = STATUS_COLORS.get(status, '')
        label = f"HANDLER [{result.task_name}]" if result.handler else f"TASK [{result.task_name}]"

        line = f"{color}{status}: [{result.host}]{RESET} {label}"
        if result.failed and result.msg:
            line += f" => {result.msg}"
        elif self.config.verbosity and result.msg:
            line += f" => {result.msg}"
        print(line)

        if self.config.verbosity > 1 and result.stdout:
            print(result.stdout.rstrip())

    def _print_warning(self, msg: str) -> None:
        if not self.json_output:
            print(f"{YELLOW}[WARNING]: {msg}{RESET}", file=sys.stderr)

    def _report_error(self, error_type: str, message: str, exit_code: int) -> None:
        if self.json_output:
            print(json.dumps({
                "error": True,
                "error_type": error_type,
                "message": message,
                "exit_code": int(exit_code),
            }, indent=2))
        else:
            print(f"{RED}ERROR! {message}{RESET}", file=sys.stderr)

    def _print_recap(self, host_stats: Dict[str, HostStats]) -> None:
        """Print final recap."""
        if self.json_output:
            return

        print("\nPLAY RECAP " + "*" * 60)

        for host, stats in sorted(host_stats.items()):
            status_parts = [
                f"{GREEN}ok={stats.ok}{RESET}",
                f"{YELLOW}changed={stats.changed}{RESET}",
                f"{RED}unreachable={stats.unreachable}{RESET}",
                f"{RED}failed={stats.failed}{RESET}",
                f"{CYAN}skipped={stats.skipped}{RESET}",
            ]
            print(f"{host:30} : " + "  ".join(status_parts))

    def _print_failures(self, failures: List[TaskResult]) -> None:
        """List host, task and reason for every failed host."""
        if self.json_output or not failures:
            return

        print("\nFAILURES " + "*" * 62)
        for result in failures:
            kind = f" ({result.error})" if result.error else ""
            print(f"{RED}{result.host}: {result.task_name}{kind}{RESET}")
            print(f"    {result.msg}")
