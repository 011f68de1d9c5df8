"""
Stagehand command module

Run a shell command line on the host.
"""

from typing import Any

from stagehand.engine.errors import ExecutionError, ModuleParamError
from stagehand.engine.playbook import ModuleKind
from stagehand.modules.base import Action, Module, ModuleResult, register_module


@register_module
class CommandModule(Module):
    """
    Execute a command on target hosts.

    There is no way to tell whether a command changed anything, so it
    always runs and always reports changed. In check mode it is skipped.
    """

    kind = ModuleKind.COMMAND
    required_args = []  # Either _raw_params or cmd
    optional_args = {
        "_raw_params": None,
        "cmd": None,
        "chdir": None,
    }

    @property
    def command(self) -> str:
        return str(self.args.get("_raw_params") or self.args.get("cmd") or "").strip()

    def validate(self) -> None:
        super().validate()
        if not self.command:
            raise ModuleParamError(self.name, "either a free-form command or 'cmd' is required")

    async def probe(self) -> Any:
        return None

    def diff(self, current: Any) -> Action:
        return Action(noop=False, description=f"run {self.command}")

    async def run(self) -> ModuleResult:
        if self.context.check_mode:
            self.validate()
            return ModuleResult(skipped=True, msg="command skipped in check mode")
        return await super().run()

    async def apply(self, action: Action) -> ModuleResult:
        result = await self.sh(self.command, cwd=self.get_arg("chdir"))
        if result.rc != 0:
            raise ExecutionError(
                self.name,
                f"non-zero return code from: {self.command}",
                rc=result.rc,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return ModuleResult(
            rc=result.rc,
            stdout=result.stdout,
            stderr=result.stderr,
            msg=action.description,
        )
