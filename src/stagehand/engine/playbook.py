"""
Stagehand Playbook Parser

Parses YAML playbooks into Play, Task and Handler objects and resolves each
play's target hosts against the inventory.
"""

import enum
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from stagehand.engine.errors import ParseError
from stagehand.engine.inventory import Host, InventoryManager


class ModuleKind(enum.Enum):
    """The closed set of task module variants."""
    PACKAGE = "package"
    COMMAND = "command"
    FILE_WRITE = "file-write"
    SERVICE = "service"
    TEXT_REPLACE = "text-replace"


# Task key -> module variant
MODULE_ALIASES: Dict[str, ModuleKind] = {
    'package': ModuleKind.PACKAGE,
    'apt': ModuleKind.PACKAGE,
    'yum': ModuleKind.PACKAGE,
    'dnf': ModuleKind.PACKAGE,
    'command': ModuleKind.COMMAND,
    'shell': ModuleKind.COMMAND,
    'file-write': ModuleKind.FILE_WRITE,
    'file_write': ModuleKind.FILE_WRITE,
    'copy': ModuleKind.FILE_WRITE,
    'service': ModuleKind.SERVICE,
    'systemd': ModuleKind.SERVICE,
    'text-replace': ModuleKind.TEXT_REPLACE,
    'text_replace': ModuleKind.TEXT_REPLACE,
    'lineinfile': ModuleKind.TEXT_REPLACE,
}

# Task keys that are NOT module names
TASK_KEYWORDS = {'name', 'notify', 'timeout', 'listen'}

PLAY_KEYWORDS = {
    'name', 'hosts', 'become', 'become_user', 'become_method', 'vars',
    'tasks', 'handlers', 'force_handlers',
}

BECOME_METHODS = ('sudo', 'su')

# Inline "key=value" arguments
INLINE_ARG_PATTERN = re.compile(r'(\w+)=(?:"([^"]*)"|\'([^\']*)\'|(\S+))')


@dataclass
class Task:
    """Represents a single task in a playbook."""

    name: str
    module: ModuleKind
    args: Dict[str, Any] = field(default_factory=dict)
    notify: List[str] = field(default_factory=list)
    timeout: Optional[int] = None

    def __repr__(self) -> str:
        return f"Task(name={self.name!r}, module={self.module.value!r})"


@dataclass
class Handler:
    """A named task that runs only when notified, at most once per host."""

    name: str
    task: Task
    # Extra notification names this handler answers to
    listen: List[str] = field(default_factory=list)


@dataclass
class Play:
    """Represents a single play in a playbook."""

    name: str
    hosts: str
    tasks: List[Task] = field(default_factory=list)
    handlers: Dict[str, Handler] = field(default_factory=dict)
    vars: Dict[str, Any] = field(default_factory=dict)
    become: bool = False
    become_user: str = "root"
    become_method: str = "sudo"
    force_handlers: bool = False

    def find_handler(self, notification: str) -> Optional[Handler]:
        """Handler answering to ``notification`` by name or listen topic."""
        if notification in self.handlers:
            return self.handlers[notification]
        for handler in self.handlers.values():
            if notification in handler.listen:
                return handler
        return None

    def __repr__(self) -> str:
        return f"Play(name={self.name!r}, hosts={self.hosts!r}, tasks={len(self.tasks)})"


class PlaybookParser:
    """
    Parse YAML playbooks into Play objects.

    All structural problems are reported as ParseError before anything runs.
    """

    def __init__(self, playbook_path: Union[str, Path]):
        self.playbook_path = Path(playbook_path)
        self.plays: List[Play] = []

    def _error(self, message: str) -> ParseError:
        return ParseError(message, file_path=str(self.playbook_path))

    def parse(self) -> List[Play]:
        """
        Parse the playbook file.

        Returns:
            List of Play objects

        Raises:
            ParseError: If the playbook is missing, not valid YAML, or
                describes plays, tasks or handlers incorrectly
        """
        if not self.playbook_path.is_file():
            raise self._error(f"Playbook not found: {self.playbook_path}")

        content = self.playbook_path.read_text(encoding='utf-8')

        try:
            documents = list(yaml.safe_load_all(content))
        except yaml.YAMLError as e:
            raise self._error(f"YAML syntax error: {e}")

        plays_data: List[Any] = []
        for doc in documents:
            if doc is None:
                continue
            if isinstance(doc, list):
                plays_data.extend(doc)
            else:
                plays_data.append(doc)

        if not plays_data:
            raise self._error("Playbook contains no plays")

        for play_data in plays_data:
            if not isinstance(play_data, dict):
                raise self._error(f"A play must be a mapping, got {type(play_data).__name__}")
            self.plays.append(self._parse_play(play_data))

        return self.plays

    def _parse_play(self, data: Dict[str, Any]) -> Play:
        """Parse a single play from YAML data."""
        if 'hosts' not in data or not data['hosts']:
            raise self._error("Play missing required 'hosts' field")

        unknown = set(data) - PLAY_KEYWORDS
        if unknown:
            raise self._error(f"Unknown play keys: {', '.join(sorted(unknown))}")

        hosts = data['hosts']
        if isinstance(hosts, list):
            hosts = ','.join(str(h) for h in hosts)

        become_method = data.get('become_method', 'sudo')
        if become_method not in BECOME_METHODS:
            raise self._error(
                f"Unsupported become_method '{become_method}' "
                f"(expected one of: {', '.join(BECOME_METHODS)})"
            )

        play = Play(
            name=data.get('name') or str(hosts),
            hosts=str(hosts),
            become=bool(data.get('become', False)),
            become_user=str(data.get('become_user', 'root')),
            become_method=become_method,
            force_handlers=bool(data.get('force_handlers', False)),
        )

        play_vars = data.get('vars') or {}
        if not isinstance(play_vars, dict):
            raise self._error(
                f"'vars' must be a dictionary, got {type(play_vars).__name__}"
            )
        play.vars = play_vars

        for task_data in self._ensure_list(data.get('tasks')):
            play.tasks.append(self._parse_task(task_data))

        for handler in self._parse_handlers(data.get('handlers')):
            if handler.name in play.handlers:
                raise self._error(f"Duplicate handler name: {handler.name}")
            play.handlers[handler.name] = handler

        # Every notification must reach a handler of this play
        for task in play.tasks:
            for notification in task.notify:
                if play.find_handler(notification) is None:
                    raise self._error(
                        f"Task '{task.name}' notifies undefined handler '{notification}'"
                    )

        return play

    def _parse_handlers(self, data: Any) -> List[Handler]:
        """Handlers come as a list of named tasks or a name -> task mapping."""
        if data is None:
            return []

        handlers: List[Handler] = []
        if isinstance(data, dict):
            for name, body in data.items():
                if not isinstance(body, dict):
                    raise self._error(f"Handler '{name}' must be a mapping")
                handlers.append(self._make_handler({'name': name, **body}))
        elif isinstance(data, list):
            for body in data:
                if not isinstance(body, dict) or not body.get('name'):
                    raise self._error("Handlers given as a list must each have a 'name'")
                handlers.append(self._make_handler(body))
        else:
            raise self._error("'handlers' must be a list or a mapping")
        return handlers

    def _make_handler(self, data: Dict[str, Any]) -> Handler:
        task = self._parse_task(data)
        if task.notify:
            raise self._error(f"Handler '{task.name}' cannot notify other handlers")
        return Handler(
            name=task.name,
            task=task,
            listen=[str(x) for x in self._ensure_list(data.get('listen'))],
        )

    def _parse_task(self, data: Any) -> Task:
        """Parse a single task from YAML data."""
        if not isinstance(data, dict):
            raise self._error(f"A task must be a mapping, got {type(data).__name__}")

        module_keys = [k for k in data if k not in TASK_KEYWORDS]
        label = data.get('name') or '<unnamed>'
        if not module_keys:
            raise self._error(f"Task '{label}' has no module")
        if len(module_keys) > 1:
            raise self._error(
                f"Task '{label}' names more than one module: {', '.join(map(str, module_keys))}"
            )

        key = module_keys[0]
        if key not in MODULE_ALIASES:
            raise self._error(f"Task '{label}' uses unknown module '{key}'")
        module = MODULE_ALIASES[key]

        timeout = data.get('timeout')
        if timeout is not None:
            if not isinstance(timeout, int) or isinstance(timeout, bool) or timeout <= 0:
                raise self._error(f"Task '{label}' timeout must be a positive integer")

        notify = [str(n) for n in self._ensure_list(data.get('notify'))]

        return Task(
            name=str(data.get('name') or f'{module.value} task'),
            module=module,
            args=self._normalize_args(module, data[key]),
            notify=notify,
            timeout=timeout,
        )

    def _normalize_args(self, module: ModuleKind, args: Any) -> Dict[str, Any]:
        """Normalize module arguments to a dictionary."""
        if args is None:
            return {}

        if isinstance(args, dict):
            return dict(args)

        if isinstance(args, str):
            # Free-form command line
            if module == ModuleKind.COMMAND:
                return {'_raw_params': args}
            parsed = {}
            for match in INLINE_ARG_PATTERN.finditer(args):
                value = next(g for g in match.groups()[1:] if g is not None)
                parsed[match.group(1)] = value
            if not parsed:
                # "package: apache2" shorthand
                return {'name': args}
            return parsed

        raise self._error(
            f"Arguments for '{module.value}' must be a mapping or string, "
            f"got {type(args).__name__}"
        )

    def _ensure_list(self, value: Any) -> List[Any]:
        if value is None:
            return []
        if isinstance(value, list):
            return value
        return [value]


def resolve_hosts(play: Play, inventory: InventoryManager) -> List[Host]:
    """
    Resolve a play's target pattern to hosts via group membership.

    Raises:
        ParseError: If the pattern names a group or host the inventory lacks
    """
    if not inventory.has_pattern(play.hosts):
        raise ParseError(
            f"Play '{play.name}' targets unknown hosts or groups: {play.hosts}"
        )
    return inventory.get_hosts(play.hosts)
