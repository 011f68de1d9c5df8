"""
Stagehand text-replace module

Replace the first line of a file that matches a regular expression.
"""

import re
from typing import Optional

from stagehand.engine.errors import ExecutionError, ModuleParamError, NoMatchError
from stagehand.engine.playbook import ModuleKind
from stagehand.modules.base import Action, Module, ModuleResult, register_module


@register_module
class TextReplaceModule(Module):
    """
    Replace the first line matching ``regexp`` with ``line``.

    A file where no line matches but ``line`` is already present verbatim
    counts as converged. Any other miss is a NoMatchError.
    """

    kind = ModuleKind.TEXT_REPLACE
    required_args = ["path", "regexp", "line"]
    optional_args = {}

    def validate(self) -> None:
        super().validate()
        try:
            re.compile(str(self.args["regexp"]))
        except re.error as e:
            raise ModuleParamError(self.name, f"invalid regexp {self.args['regexp']!r}: {e}")

    async def probe(self) -> Optional[str]:
        return await self.read_file(self.args["path"])

    def diff(self, current: Optional[str]) -> Action:
        path = self.args["path"]
        if current is None:
            raise ExecutionError(self.name, f"{path} does not exist")

        pattern = re.compile(str(self.args["regexp"]))
        new_line = str(self.args["line"])
        lines = current.splitlines(keepends=True)

        for index, raw in enumerate(lines):
            text = raw.rstrip('\r\n')
            if not pattern.search(text):
                continue
            if text == new_line:
                return Action.nothing(f"{path} already has the line")
            lines[index] = new_line + raw[len(text):]
            return Action(
                noop=False,
                description=f"replace line {index + 1} of {path}",
                steps=[''.join(lines)],
            )

        if any(raw.rstrip('\r\n') == new_line for raw in lines):
            return Action.nothing(f"{path} already has the line")

        raise NoMatchError(path, str(self.args["regexp"]))

    async def apply(self, action: Action) -> ModuleResult:
        await self.write_file(self.args["path"], action.steps[0])
        return ModuleResult(msg=action.description)
