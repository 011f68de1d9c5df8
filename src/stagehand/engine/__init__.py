"""
Stagehand Engine Module

Core execution engine for parsing and running playbooks.

The scheduler and runner import the module layer, so they are imported
from their own modules rather than re-exported here.
"""

from stagehand.engine.inventory import Host, InventoryManager
from stagehand.engine.playbook import Handler, ModuleKind, Play, PlaybookParser, Task
from stagehand.engine.templating import TemplateEngine
from stagehand.engine.results import HostState, TaskResult, TaskStatus, PlayResult, PlaybookResult
from stagehand.engine.handlers import NotificationQueue
from stagehand.engine.errors import (
    StagehandError,
    ParseError,
    InventoryError,
    ConnectionError,
    ModuleParamError,
    ExecutionError,
    NoMatchError,
    TemplateError,
)

__all__ = [
    'Host',
    'InventoryManager',
    'Handler',
    'ModuleKind',
    'Play',
    'PlaybookParser',
    'Task',
    'TemplateEngine',
    'HostState',
    'TaskResult',
    'TaskStatus',
    'PlayResult',
    'PlaybookResult',
    'NotificationQueue',
    'StagehandError',
    'ParseError',
    'InventoryError',
    'ConnectionError',
    'ModuleParamError',
    'ExecutionError',
    'NoMatchError',
    'TemplateError',
]
