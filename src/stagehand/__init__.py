# Copyright (c) 2024 Stagehand Contributors
# MIT License

"""
Stagehand: minimal declarative remote-configuration applier.

Applies YAML plays of idempotent tasks to the hosts of an inventory over
local or SSH channels, in the style of an Ansible playbook run.

Features:
    - Inventory in YAML or INI form, with groups and group vars
    - Local (asyncio subprocess) and SSH (asyncssh) connections
    - package, command, file-write, service and text-replace modules
    - Deduplicated handlers fired once per host after its tasks
    - Hosts processed in parallel, tasks per host strictly in order

This package exposes release metadata; the CLI lives in ``stagehand.cli``.
"""

from __future__ import annotations

from stagehand.release import __version__, __author__, __codename__

__all__ = [
    "__version__",
    "__author__",
    "__codename__",
]
