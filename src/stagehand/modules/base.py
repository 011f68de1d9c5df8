"""
Stagehand Module Base

Base class and registry for all modules.

Every module is one variant of the ModuleKind union and exposes the same
capability surface: ``validate`` checks parameters, ``probe`` reads the
current state from the host, ``diff`` maps (desired, current) to an
Action without touching the host, and ``apply`` performs that Action.
"""

import logging
import shlex
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Type

from stagehand.connections.base import TIMEOUT_RC, RunResult
from stagehand.engine.context import HostContext
from stagehand.engine.errors import ExecutionError, ModuleParamError, StagehandError
from stagehand.engine.playbook import ModuleKind, Task
from stagehand.engine.results import TaskResult, TaskStatus

logger = logging.getLogger(__name__)

# Exit status of the read helper when the file does not exist
MISSING_FILE_RC = 3


def to_bool(value: Any) -> bool:
    """Interpret YAML and rendered-template booleans ("yes", "true", "1")."""
    if isinstance(value, str):
        return value.strip().lower() in ('yes', 'true', 'on', '1')
    return bool(value)


@dataclass
class Action:
    """What a module has to do to converge a host."""

    noop: bool
    description: str = ""
    # Module-specific detail consumed by ``apply``
    steps: List[Any] = field(default_factory=list)

    @classmethod
    def nothing(cls, description: str = "") -> 'Action':
        return cls(noop=True, description=description)


@dataclass
class ModuleResult:
    """Result of module execution."""

    changed: bool = False
    skipped: bool = False
    rc: int = 0
    stdout: str = ""
    stderr: str = ""
    msg: str = ""

    def to_task_result(self, host: str, task_name: str) -> TaskResult:
        """Convert to TaskResult."""
        if self.skipped:
            status = TaskStatus.SKIPPED
        elif self.changed:
            status = TaskStatus.CHANGED
        else:
            status = TaskStatus.OK

        return TaskResult(
            host=host,
            task_name=task_name,
            status=status,
            rc=self.rc,
            stdout=self.stdout,
            stderr=self.stderr,
            msg=self.msg,
        )


class Module(ABC):
    """
    Base class for all modules.

    Failures are raised as StagehandError subclasses; ``execute`` turns
    them into failed task results.
    """

    kind: ModuleKind

    # Required arguments
    required_args: List[str] = []

    # Optional arguments with defaults
    optional_args: Dict[str, Any] = {}

    # Allowed values for enumerated arguments
    choices: Dict[str, Tuple[Any, ...]] = {}

    def __init__(self, args: Dict[str, Any], context: HostContext):
        self.args = args
        self.context = context
        self.connection = context.connection

    @property
    def name(self) -> str:
        return self.kind.value

    def validate(self) -> None:
        """
        Validate module arguments against the module schema.

        Raises:
            ModuleParamError: On a missing, unknown or out-of-range argument
        """
        for required in self.required_args:
            if self.args.get(required) in (None, ''):
                raise ModuleParamError(self.name, f"missing required argument: {required}")

        known = set(self.required_args) | set(self.optional_args)
        unknown = sorted(set(self.args) - known)
        if unknown:
            raise ModuleParamError(self.name, f"unsupported arguments: {', '.join(unknown)}")

        for arg, allowed in self.choices.items():
            value = self.args.get(arg)
            if value is not None and value not in allowed:
                raise ModuleParamError(
                    self.name,
                    f"{arg} must be one of {', '.join(map(str, allowed))}, got {value!r}",
                )

    def get_arg(self, name: str, default: Any = None) -> Any:
        """Get an argument value with optional default."""
        if self.args.get(name) is not None:
            return self.args[name]
        if name in self.optional_args:
            return self.optional_args[name]
        return default

    def wrap_become(self, cmd: str) -> str:
        """Wrap command with privilege escalation if become is enabled."""
        if not self.context.become:
            return cmd

        user = self.context.become_user
        if self.context.become_method == "su":
            return f"su - {shlex.quote(user)} -c {shlex.quote(cmd)}"
        return f"sudo -H -n -u {shlex.quote(user)} /bin/sh -c {shlex.quote(cmd)}"

    async def sh(self, cmd: str, cwd: Optional[str] = None) -> RunResult:
        """Run ``cmd`` on the host with become and the task timeout applied."""
        result = await self.connection.run(
            self.wrap_become(cmd),
            timeout=self.context.timeout,
            cwd=cwd,
        )
        if result.rc == TIMEOUT_RC and result.stderr == "Command timed out":
            raise ExecutionError(self.name, f"timed out: {cmd}", rc=result.rc)
        return result

    async def read_file(self, path: str) -> Optional[str]:
        """Content of ``path`` on the host, or None if it does not exist."""
        quoted = shlex.quote(path)
        result = await self.sh(f"[ -e {quoted} ] || exit {MISSING_FILE_RC}; cat {quoted}")
        if result.rc == MISSING_FILE_RC:
            return None
        if result.rc != 0:
            raise ExecutionError(
                self.name, f"cannot read {path}", rc=result.rc, stderr=result.stderr
            )
        return result.stdout

    async def write_file(self, path: str, content: str) -> None:
        """Replace ``path`` on the host with ``content``."""
        quoted = shlex.quote(path)
        if self.context.become:
            # Staged as the login user, then copied in as the become user so
            # the target keeps (or gets) that user's ownership.
            staged = f"/tmp/.stagehand-{uuid.uuid4().hex}"
            mode = 0o600 if self.context.become_user == "root" else 0o644
            cmd = f"cat {shlex.quote(staged)} > {quoted}"
        else:
            staged = f"{path}.stagehand.tmp"
            mode = None
            tmp = shlex.quote(staged)
            cmd = (
                f"{{ [ ! -e {quoted} ] || chmod --reference={quoted} {tmp}; }} "
                f"&& mv -f {tmp} {quoted}"
            )

        try:
            await self.connection.put(content.encode('utf-8'), staged, mode=mode)
        except OSError as e:
            raise ExecutionError(self.name, f"cannot write {path}: {e}", stderr=str(e))

        result = await self.sh(cmd)
        if self.context.become or result.rc != 0:
            await self.connection.run(f"rm -f {shlex.quote(staged)}", timeout=self.context.timeout)
        if result.rc != 0:
            raise ExecutionError(
                self.name, f"cannot write {path}", rc=result.rc, stderr=result.stderr
            )

    @abstractmethod
    async def probe(self) -> Any:
        """Read the current state relevant to this module from the host."""

    @abstractmethod
    def diff(self, current: Any) -> Action:
        """Decide what must change. Must not touch the host."""

    @abstractmethod
    async def apply(self, action: Action) -> ModuleResult:
        """Carry out ``action`` on the host."""

    async def run(self) -> ModuleResult:
        """Validate, probe, diff, and apply unless converged or in check mode."""
        self.validate()
        current = await self.probe()
        action = self.diff(current)
        logger.debug(
            "[%s] %s: %s", self.context.host.name, self.name,
            action.description or ("noop" if action.noop else "change"),
        )

        if action.noop:
            return ModuleResult(changed=False, msg=action.description)

        if self.context.check_mode:
            return ModuleResult(changed=True, msg=f"would {action.description} (check mode)")

        result = await self.apply(action)
        result.changed = True
        if not result.msg:
            result.msg = action.description
        return result


# Module registry, keyed by variant
_modules: Dict[ModuleKind, Type[Module]] = {}
_modules_imported = False


def register_module(cls: Type[Module]) -> Type[Module]:
    """Decorator to register a module class."""
    _modules[cls.kind] = cls
    return cls


def get_module(kind: ModuleKind) -> Optional[Type[Module]]:
    """Get a module class by variant."""
    _ensure_modules_imported()
    return _modules.get(kind)


def _ensure_modules_imported() -> None:
    global _modules_imported
    if not _modules_imported:
        _import_builtin_modules()
        _modules_imported = True


def _import_builtin_modules() -> None:
    """Import all built-in modules to register them."""
    # These imports trigger the @register_module decorators
    from stagehand.modules import builtin_command  # noqa: F401
    from stagehand.modules import builtin_file_write  # noqa: F401
    from stagehand.modules import builtin_package  # noqa: F401
    from stagehand.modules import builtin_service  # noqa: F401
    from stagehand.modules import builtin_text_replace  # noqa: F401


async def execute(task: Task, ctx: HostContext, params: Dict[str, Any]) -> TaskResult:
    """
    Apply one task with already-rendered ``params`` on the host in ``ctx``.

    Every StagehandError becomes a failed TaskResult carrying the error kind.
    """
    module_class = get_module(task.module)
    if module_class is None:
        return TaskResult(
            host=ctx.host.name,
            task_name=task.name,
            status=TaskStatus.FAILED,
            msg=f"Unknown module: {task.module.value}",
            error=ModuleParamError.kind,
        )

    module = module_class(params, ctx)
    try:
        result = await module.run()
    except StagehandError as e:
        return TaskResult(
            host=ctx.host.name,
            task_name=task.name,
            status=TaskStatus.FAILED,
            msg=str(e),
            rc=getattr(e, 'rc', None) or 0,
            stdout=getattr(e, 'stdout', None) or "",
            stderr=getattr(e, 'stderr', None) or "",
            error=e.kind,
        )

    return result.to_task_result(ctx.host.name, task.name)
