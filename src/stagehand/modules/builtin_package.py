"""
Stagehand package module

Install or remove OS packages with whichever of apt, dnf or yum the host has.
"""

import shlex
from dataclasses import dataclass, field
from typing import Dict, List

from stagehand.engine.errors import ExecutionError, ModuleParamError
from stagehand.engine.playbook import ModuleKind
from stagehand.modules.base import Action, Module, ModuleResult, register_module, to_bool

# Probed in order; the first one present wins
PACKAGE_MANAGERS = ('apt-get', 'dnf', 'yum')

DETECT_CMD = (
    "for m in " + " ".join(PACKAGE_MANAGERS) + "; do "
    "command -v $m >/dev/null 2>&1 && { echo $m; exit 0; }; "
    "done; exit 1"
)


@dataclass
class PackageState:
    manager: str
    installed: Dict[str, bool] = field(default_factory=dict)


@register_module
class PackageModule(Module):
    """
    Manage OS packages.

    ``present`` installs what is missing, ``absent`` removes what is
    installed. Packages already in the desired state are left alone.
    """

    kind = ModuleKind.PACKAGE
    required_args = ["name"]
    optional_args = {
        "state": "present",     # present, absent
        "update_cache": False,  # Refresh metadata before installing
    }
    choices = {
        "state": ("present", "absent"),
    }

    @property
    def packages(self) -> List[str]:
        name = self.args["name"]
        if isinstance(name, list):
            return [str(n) for n in name]
        return [n.strip() for n in str(name).split(',') if n.strip()]

    def validate(self) -> None:
        super().validate()
        if not self.packages:
            raise ModuleParamError(self.name, "name must list at least one package")

    async def probe(self) -> PackageState:
        result = await self.sh(DETECT_CMD)
        manager = result.stdout.strip().splitlines()[-1] if result.stdout.strip() else ""
        if result.rc != 0 or manager not in PACKAGE_MANAGERS:
            raise ExecutionError(
                self.name, "no supported package manager (apt-get, dnf, yum) found",
                rc=result.rc, stderr=result.stderr,
            )

        state = PackageState(manager=manager)
        for pkg in self.packages:
            state.installed[pkg] = await self._is_installed(manager, pkg)
        return state

    async def _is_installed(self, manager: str, pkg: str) -> bool:
        quoted = shlex.quote(pkg)
        if manager == 'apt-get':
            result = await self.sh(f"dpkg-query -W -f='${{Status}}' {quoted} 2>/dev/null")
            return result.rc == 0 and "install ok installed" in result.stdout
        result = await self.sh(f"rpm -q {quoted} >/dev/null 2>&1")
        return result.rc == 0

    def diff(self, current: PackageState) -> Action:
        want_installed = self.get_arg("state") == "present"
        pending = [
            pkg for pkg, installed in current.installed.items()
            if installed != want_installed
        ]
        if not pending:
            return Action.nothing(
                f"{', '.join(current.installed)} already {self.get_arg('state')}"
            )

        verb = "install" if want_installed else "remove"
        return Action(
            noop=False,
            description=f"{verb} {', '.join(pending)}",
            steps=[current.manager, verb] + pending,
        )

    async def apply(self, action: Action) -> ModuleResult:
        manager, verb, *pending = action.steps
        names = " ".join(shlex.quote(p) for p in pending)

        if to_bool(self.get_arg("update_cache")):
            refresh = "apt-get update -qq" if manager == 'apt-get' else f"{manager} makecache -q"
            result = await self.sh(refresh)
            if result.rc != 0:
                raise ExecutionError(
                    self.name, "failed to update package cache",
                    rc=result.rc, stdout=result.stdout, stderr=result.stderr,
                )

        if manager == 'apt-get':
            cmd = f"DEBIAN_FRONTEND=noninteractive apt-get {verb} -y -q {names}"
        else:
            cmd = f"{manager} {verb} -y -q {names}"

        result = await self.sh(cmd)
        if result.rc != 0:
            raise ExecutionError(
                self.name, f"{manager} {verb} failed",
                rc=result.rc, stdout=result.stdout, stderr=result.stderr,
            )

        return ModuleResult(
            rc=result.rc,
            stdout=result.stdout,
            stderr=result.stderr,
            msg=action.description,
        )
