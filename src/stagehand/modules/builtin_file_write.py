"""
Stagehand file-write module

Write literal content to a file on the host.
"""

import shlex
from dataclasses import dataclass
from typing import Any, Optional

from stagehand.engine.errors import ExecutionError, ModuleParamError
from stagehand.engine.playbook import ModuleKind
from stagehand.modules.base import Action, Module, ModuleResult, register_module


def normalize_mode(mode: Any) -> Optional[str]:
    """
    Octal permission string without leading zeros ("0644" and 0o644 give "644").

    YAML reads an unquoted 0644 as the integer 420, so integers are taken
    as the numeric mode itself.
    """
    if mode is None or mode == "":
        return None
    if isinstance(mode, int):
        return format(mode, 'o')
    return format(int(str(mode), 8), 'o')


@dataclass
class FileState:
    content: Optional[str]
    mode: Optional[str] = None

    @property
    def exists(self) -> bool:
        return self.content is not None


@register_module
class FileWriteModule(Module):
    """
    Ensure a file holds exactly the given content.

    The file is rewritten only when its content differs. An optional
    ``mode`` is applied when the current permissions differ.
    """

    kind = ModuleKind.FILE_WRITE
    required_args = ["dest"]
    optional_args = {
        "content": None,
        "mode": None,  # Octal permissions, e.g. "0644"
    }

    def validate(self) -> None:
        super().validate()
        if self.args.get("content") is None:
            raise ModuleParamError(self.name, "missing required argument: content")
        try:
            normalize_mode(self.args.get("mode"))
        except ValueError:
            raise ModuleParamError(self.name, f"invalid mode: {self.args['mode']!r}")

    @property
    def content(self) -> str:
        return str(self.args["content"])

    async def probe(self) -> FileState:
        dest = self.args["dest"]
        state = FileState(content=await self.read_file(dest))
        if state.exists and self.get_arg("mode") is not None:
            result = await self.sh(f"stat -c %a {shlex.quote(dest)}")
            if result.rc == 0:
                state.mode = result.stdout.strip()
        return state

    def diff(self, current: FileState) -> Action:
        dest = self.args["dest"]
        steps = []
        if current.content != self.content:
            steps.append("write")

        mode = normalize_mode(self.get_arg("mode"))
        if mode is not None and (not current.exists or current.mode != mode):
            steps.append("chmod")

        if not steps:
            return Action.nothing(f"{dest} is up to date")
        if "write" in steps:
            verb = "update" if current.exists else "create"
            return Action(noop=False, description=f"{verb} {dest}", steps=steps)
        return Action(noop=False, description=f"set mode {mode} on {dest}", steps=steps)

    async def apply(self, action: Action) -> ModuleResult:
        dest = self.args["dest"]
        if "write" in action.steps:
            await self.write_file(dest, self.content)

        if "chmod" in action.steps:
            mode = normalize_mode(self.get_arg("mode"))
            result = await self.sh(f"chmod {mode} {shlex.quote(dest)}")
            if result.rc != 0:
                raise ExecutionError(
                    self.name, f"cannot set mode {mode} on {dest}",
                    rc=result.rc, stderr=result.stderr,
                )

        return ModuleResult(msg=action.description)
