"""
Stagehand Connections Module

Execution channels for local and SSH hosts.
"""

from stagehand.connections.base import Connection, RunResult, connect, create_connection
from stagehand.connections.local import LocalConnection

__all__ = [
    'Connection',
    'RunResult',
    'LocalConnection',
    'connect',
    'create_connection',
]
