"""
Stagehand Host Context

Runtime state for a single host while a play runs on it.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from stagehand.engine.handlers import NotificationQueue
from stagehand.engine.inventory import Host
from stagehand.engine.results import HostRun, HostState


@dataclass
class HostContext:
    """Runtime context for a single host during play execution."""

    host: Host
    vars: Dict[str, Any] = field(default_factory=dict)
    connection: Any = None  # Connection object (set during execution)
    check_mode: bool = False  # Dry-run mode
    become: bool = False  # Privilege escalation
    become_user: str = "root"  # Target user for become
    become_method: str = "sudo"  # Method: sudo, su
    timeout: Optional[float] = None  # Per-command timeout of the current task
    notifications: NotificationQueue = field(default_factory=NotificationQueue)
    run: Optional[HostRun] = None

    def __post_init__(self) -> None:
        if self.run is None:
            self.run = HostRun(self.host.name)

    @property
    def state(self) -> HostState:
        return self.run.state

    @state.setter
    def state(self, value: HostState) -> None:
        self.run.state = value

    @property
    def failed(self) -> bool:
        return self.run.state == HostState.FAILED

    def get_vars(self) -> Dict[str, Any]:
        """Get all variables for templating."""
        merged = {}
        merged.update(self.host.get_vars())
        merged.update(self.vars)
        return merged
