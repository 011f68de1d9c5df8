"""
Stagehand Modules

Built-in modules for task execution.
"""

from stagehand.modules.base import Action, Module, ModuleResult, execute, get_module

__all__ = [
    'Action',
    'Module',
    'ModuleResult',
    'execute',
    'get_module',
]
