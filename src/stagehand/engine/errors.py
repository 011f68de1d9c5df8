# Copyright (c) 2024 Stagehand Contributors
# MIT License

"""
Stagehand Error Classes.

Load-time errors abort the run before any host is touched. Everything
raised while a host runs becomes a failed task result for that host.
"""

from __future__ import annotations

import enum


class ExitCode(enum.IntEnum):
    """Process exit codes for the playbook CLI."""

    SUCCESS = 0
    GENERIC_ERROR = 1
    HOST_FAILED = 2
    PARSE_ERROR = 3
    KEYBOARD_INTERRUPT = 130


class StagehandError(Exception):
    """Base exception for all Stagehand errors."""

    exit_code: int = ExitCode.GENERIC_ERROR
    # Short machine-readable kind used in reports
    kind: str = "error"

    def __init__(self, message: str, details: str | None = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}\n  Details: {self.details}"
        return self.message


class ParseError(StagehandError):
    """Invalid inventory, playbook, config or command-line input."""

    exit_code: int = ExitCode.PARSE_ERROR
    kind = "parse_error"

    def __init__(self, message: str, file_path: str | None = None) -> None:
        self.file_path = file_path
        location = f" in {file_path}" if file_path else ""
        super().__init__(f"Parse error{location}: {message}")


class InventoryError(ParseError):
    """Malformed inventory or unresolvable host pattern."""


class ConnectionError(StagehandError):
    """Host unreachable or authentication rejected."""

    kind = "connection_error"

    def __init__(self, host: str, message: str, connection_type: str | None = None) -> None:
        self.host = host
        via = f" ({connection_type})" if connection_type else ""
        super().__init__(f"Connection to {host}{via} failed: {message}")


class ModuleParamError(StagehandError):
    """Task parameters do not satisfy the module's schema."""

    kind = "module_param_error"

    def __init__(self, module: str, message: str) -> None:
        self.module = module
        super().__init__(f"Invalid parameters for '{module}': {message}")


class ExecutionError(StagehandError):
    """A module failed while probing or applying on a host."""

    kind = "execution_error"

    def __init__(
        self,
        module: str,
        message: str,
        rc: int | None = None,
        stdout: str | None = None,
        stderr: str | None = None,
    ) -> None:
        self.module = module
        self.rc = rc
        self.stdout = stdout
        self.stderr = stderr
        details = f"rc={rc}" if rc is not None else None
        super().__init__(f"Module '{module}' failed: {message}", details)


class NoMatchError(ExecutionError):
    """text-replace found no line matching its pattern."""

    kind = "no_match"

    def __init__(self, path: str, pattern: str) -> None:
        self.path = path
        self.pattern = pattern
        super().__init__("text-replace", f"no line in {path} matches {pattern!r}")


class TemplateError(StagehandError):
    """A task parameter failed to render."""

    kind = "template_error"

    def __init__(self, message: str, template: str | None = None) -> None:
        self.template = template
        if template and len(template) > 100:
            template = template[:100] + "..."
        super().__init__(f"Template error: {message}", f"template: {template}" if template else None)
