"""
Tests for the file-write module against a real local shell.
"""

import os
import stat
from typing import List

import pytest

from stagehand.connections.local import LocalConnection
from stagehand.engine.context import HostContext
from stagehand.engine.inventory import Host
from stagehand.engine.playbook import ModuleKind, Task
from stagehand.engine.results import TaskStatus
from stagehand.modules.base import execute
from stagehand.modules.builtin_file_write import normalize_mode


class RecordingLocalConnection(LocalConnection):
    """LocalConnection that remembers every command line."""

    def __init__(self, host: Host):
        super().__init__(host)
        self.commands_run: List[str] = []
        self.writes: List[str] = []

    async def run(self, command, timeout=None, cwd=None):
        self.commands_run.append(command)
        return await super().run(command, timeout=timeout, cwd=cwd)

    async def put(self, content, remote_path, mode=None):
        self.writes.append(remote_path)
        await super().put(content, remote_path, mode=mode)


@pytest.fixture
def conn():
    return RecordingLocalConnection(Host("localhost"))


def write_task(**args) -> Task:
    return Task(name="Write index", module=ModuleKind.FILE_WRITE, args=args)


class TestFileWrite:
    """Test content convergence."""

    @pytest.mark.asyncio
    async def test_creates_then_ok(self, tmp_path, conn):
        dest = tmp_path / "index.html"
        task = write_task(dest=str(dest), content="<h1>hello</h1>\n")
        ctx = HostContext(host=conn.host, connection=conn)

        first = await execute(task, ctx, task.args)
        assert first.status == TaskStatus.CHANGED
        assert dest.read_text() == "<h1>hello</h1>\n"

        second = await execute(task, ctx, task.args)
        assert second.status == TaskStatus.OK
        assert len(conn.writes) == 1

    @pytest.mark.asyncio
    async def test_identical_content_not_written(self, tmp_path, conn):
        dest = tmp_path / "motd"
        dest.write_text("welcome\n")
        before = dest.stat().st_mtime_ns
        task = write_task(dest=str(dest), content="welcome\n")

        result = await execute(task, HostContext(host=conn.host, connection=conn), task.args)

        assert result.status == TaskStatus.OK
        assert conn.writes == []
        assert dest.stat().st_mtime_ns == before

    @pytest.mark.asyncio
    async def test_different_content_replaced(self, tmp_path, conn):
        dest = tmp_path / "motd"
        dest.write_text("old\n")
        task = write_task(dest=str(dest), content="new 'quoted' $HOME `x`\n")

        result = await execute(task, HostContext(host=conn.host, connection=conn), task.args)

        assert result.status == TaskStatus.CHANGED
        assert result.msg == f"update {dest}"
        assert dest.read_text() == "new 'quoted' $HOME `x`\n"

    @pytest.mark.asyncio
    async def test_existing_permissions_kept(self, tmp_path, conn):
        dest = tmp_path / "secret"
        dest.write_text("a")
        os.chmod(dest, 0o600)
        task = write_task(dest=str(dest), content="b")

        await execute(task, HostContext(host=conn.host, connection=conn), task.args)

        assert stat.S_IMODE(dest.stat().st_mode) == 0o600

    @pytest.mark.asyncio
    async def test_mode_applied(self, tmp_path, conn):
        dest = tmp_path / "script.sh"
        task = write_task(dest=str(dest), content="#!/bin/sh\n", mode="0750")
        ctx = HostContext(host=conn.host, connection=conn)

        first = await execute(task, ctx, task.args)
        assert first.status == TaskStatus.CHANGED
        assert stat.S_IMODE(dest.stat().st_mode) == 0o750

        second = await execute(task, ctx, task.args)
        assert second.status == TaskStatus.OK

    @pytest.mark.asyncio
    async def test_mode_only_change(self, tmp_path, conn):
        dest = tmp_path / "conf"
        dest.write_text("x")
        os.chmod(dest, 0o644)
        task = write_task(dest=str(dest), content="x", mode="0600")

        result = await execute(task, HostContext(host=conn.host, connection=conn), task.args)

        assert result.status == TaskStatus.CHANGED
        assert conn.writes == []
        assert stat.S_IMODE(dest.stat().st_mode) == 0o600

    @pytest.mark.asyncio
    async def test_check_mode_does_not_write(self, tmp_path, conn):
        dest = tmp_path / "index.html"
        task = write_task(dest=str(dest), content="hi")
        ctx = HostContext(host=conn.host, connection=conn, check_mode=True)

        result = await execute(task, ctx, task.args)

        assert result.status == TaskStatus.CHANGED
        assert not dest.exists()

    @pytest.mark.asyncio
    async def test_missing_directory_fails(self, tmp_path, conn):
        task = write_task(dest=str(tmp_path / "nope" / "file"), content="x")

        result = await execute(task, HostContext(host=conn.host, connection=conn), task.args)

        assert result.status == TaskStatus.FAILED
        assert result.error == "execution_error"

    @pytest.mark.asyncio
    async def test_large_content(self, tmp_path, conn):
        dest = tmp_path / "big.txt"
        content = "x" * 199_999 + "\n"
        task = write_task(dest=str(dest), content=content)
        ctx = HostContext(host=conn.host, connection=conn)

        first = await execute(task, ctx, task.args)
        assert first.status == TaskStatus.CHANGED
        assert dest.read_text() == content
        assert all(len(c) < 4096 for c in conn.commands_run)

        second = await execute(task, ctx, task.args)
        assert second.status == TaskStatus.OK

    @pytest.mark.asyncio
    async def test_no_staging_file_left(self, tmp_path, conn):
        dest = tmp_path / "motd"
        task = write_task(dest=str(dest), content="hi\n")

        await execute(task, HostContext(host=conn.host, connection=conn), task.args)

        assert [p.name for p in tmp_path.iterdir()] == ["motd"]

    @pytest.mark.asyncio
    async def test_content_required(self, tmp_path, conn):
        task = write_task(dest=str(tmp_path / "f"))

        result = await execute(task, HostContext(host=conn.host, connection=conn), task.args)

        assert result.status == TaskStatus.FAILED
        assert result.error == "module_param_error"

    @pytest.mark.asyncio
    async def test_bad_mode(self, tmp_path, conn):
        task = write_task(dest=str(tmp_path / "f"), content="x", mode="rwx")

        result = await execute(task, HostContext(host=conn.host, connection=conn), task.args)

        assert result.error == "module_param_error"


class TestNormalizeMode:
    """Mode spellings all compare as stat's %a output."""

    @pytest.mark.parametrize("mode,expected", [
        ("0644", "644"),
        ("644", "644"),
        (0o644, "644"),
        ("0755", "755"),
        (None, None),
    ])
    def test_normalize(self, mode, expected):
        assert normalize_mode(mode) == expected
