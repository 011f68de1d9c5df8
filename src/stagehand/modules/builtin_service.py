"""
Stagehand service module

Manage services on Linux systems.
"""

import shlex
from dataclasses import dataclass
from typing import List, Optional

from stagehand.engine.errors import ExecutionError, ModuleParamError
from stagehand.engine.playbook import ModuleKind
from stagehand.modules.base import Action, Module, ModuleResult, register_module, to_bool


@dataclass
class ServiceState:
    manager: str  # systemd or sysvinit
    active: bool
    enabled: Optional[bool] = None


@register_module
class ServiceModule(Module):
    """
    Manage services (start, stop, restart, reload, enable, disable).

    Converges through systemctl, falling back to the ``service`` wrapper on
    hosts without systemd. ``restarted`` and ``reloaded`` always act.
    """

    kind = ModuleKind.SERVICE
    required_args = ["name"]
    optional_args = {
        "state": None,    # started, stopped, restarted, reloaded
        "enabled": None,  # yes/no
    }
    choices = {
        "state": ("started", "stopped", "restarted", "reloaded"),
    }

    def validate(self) -> None:
        super().validate()
        if self.get_arg("state") is None and self.get_arg("enabled") is None:
            raise ModuleParamError(self.name, "either 'state' or 'enabled' must be specified")

    async def probe(self) -> ServiceState:
        name = shlex.quote(str(self.args["name"]))
        has_systemd = (await self.sh("command -v systemctl >/dev/null 2>&1")).rc == 0

        if not has_systemd:
            status = await self.sh(f"service {name} status >/dev/null 2>&1")
            return ServiceState(manager="sysvinit", active=status.rc == 0)

        active = await self.sh(f"systemctl is-active {name}")
        state = ServiceState(manager="systemd", active=active.stdout.strip() == "active")
        if self.get_arg("enabled") is not None:
            enabled = await self.sh(f"systemctl is-enabled {name}")
            state.enabled = enabled.stdout.strip() in ("enabled", "static", "alias")
        return state

    def diff(self, current: ServiceState) -> Action:
        name = str(self.args["name"])
        state = self.get_arg("state")
        verbs: List[str] = []

        if state == "started" and not current.active:
            verbs.append("start")
        elif state == "stopped" and current.active:
            verbs.append("stop")
        elif state == "restarted":
            verbs.append("restart")
        elif state == "reloaded":
            verbs.append("reload")

        enabled = self.get_arg("enabled")
        if enabled is not None:
            want = to_bool(enabled)
            if current.enabled != want:
                verbs.append("enable" if want else "disable")

        if not verbs:
            return Action.nothing(f"service {name} already in desired state")
        return Action(
            noop=False,
            description=f"{' and '.join(verbs)} {name}",
            steps=[current.manager] + verbs,
        )

    async def apply(self, action: Action) -> ModuleResult:
        manager, *verbs = action.steps
        name = shlex.quote(str(self.args["name"]))

        for verb in verbs:
            if manager == "systemd":
                cmd = f"systemctl {verb} {name}"
            elif verb in ("enable", "disable"):
                raise ExecutionError(self.name, f"cannot {verb} {name} without systemd")
            else:
                cmd = f"service {name} {verb}"

            result = await self.sh(cmd)
            if result.rc != 0:
                raise ExecutionError(
                    self.name, f"failed to {verb} {self.args['name']}",
                    rc=result.rc, stdout=result.stdout, stderr=result.stderr,
                )

        return ModuleResult(msg=action.description)
