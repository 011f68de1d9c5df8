"""
Tests for the text-replace module.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from stagehand.connections.base import RunResult
from stagehand.connections.local import LocalConnection
from stagehand.engine.context import HostContext
from stagehand.engine.errors import NoMatchError
from stagehand.engine.inventory import Host
from stagehand.engine.playbook import ModuleKind, Task
from stagehand.engine.results import TaskStatus
from stagehand.modules.base import execute
from stagehand.modules.builtin_text_replace import TextReplaceModule

DIR_CONF = """\
<IfModule mod_dir.c>
\tDirectoryIndex index.html index.cgi index.pl index.php index.xhtml index.htm
</IfModule>
"""

NEW_LINE = "\tDirectoryIndex index.php index.html"


def replace_task(**args) -> Task:
    return Task(name="Prefer index.php", module=ModuleKind.TEXT_REPLACE, args=args)


def local_context() -> HostContext:
    host = Host("localhost")
    return HostContext(host=host, connection=LocalConnection(host))


class TestTextReplaceLocal:
    """Run against real files."""

    @pytest.mark.asyncio
    async def test_replace_then_ok(self, tmp_path):
        path = tmp_path / "dir.conf"
        path.write_text(DIR_CONF)
        task = replace_task(path=str(path), regexp=r"^\s*DirectoryIndex", line=NEW_LINE)
        ctx = local_context()

        first = await execute(task, ctx, task.args)
        assert first.status == TaskStatus.CHANGED
        assert path.read_text() == (
            "<IfModule mod_dir.c>\n"
            "\tDirectoryIndex index.php index.html\n"
            "</IfModule>\n"
        )

        second = await execute(task, ctx, task.args)
        assert second.status == TaskStatus.OK

    @pytest.mark.asyncio
    async def test_only_first_match_replaced(self, tmp_path):
        path = tmp_path / "conf"
        path.write_text("port=1\nport=2\n")
        task = replace_task(path=str(path), regexp="^port=", line="port=8080")

        result = await execute(task, local_context(), task.args)

        assert result.status == TaskStatus.CHANGED
        assert path.read_text() == "port=8080\nport=2\n"

    @pytest.mark.asyncio
    async def test_no_match_fails(self, tmp_path):
        path = tmp_path / "conf"
        path.write_text("nothing here\n")
        task = replace_task(path=str(path), regexp="^Listen", line="Listen 8080")

        result = await execute(task, local_context(), task.args)

        assert result.status == TaskStatus.FAILED
        assert result.error == "no_match"
        assert path.read_text() == "nothing here\n"

    @pytest.mark.asyncio
    async def test_line_present_without_match_is_ok(self, tmp_path):
        """A regexp that stops matching after its own replacement still converges."""
        path = tmp_path / "conf"
        path.write_text("Listen 8080\n")
        task = replace_task(path=str(path), regexp="^Listen 80$", line="Listen 8080")

        result = await execute(task, local_context(), task.args)

        assert result.status == TaskStatus.OK

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        task = replace_task(path=str(tmp_path / "absent"), regexp="x", line="y")

        result = await execute(task, local_context(), task.args)

        assert result.status == TaskStatus.FAILED
        assert result.error == "execution_error"
        assert "does not exist" in result.msg

    @pytest.mark.asyncio
    async def test_last_line_without_newline(self, tmp_path):
        path = tmp_path / "conf"
        path.write_text("a=1\nb=2")
        task = replace_task(path=str(path), regexp="^b=", line="b=3")

        await execute(task, local_context(), task.args)

        assert path.read_text() == "a=1\nb=3"


class TestTextReplaceDiff:
    """diff() is pure and decides from the given content alone."""

    def make_module(self, **args) -> TextReplaceModule:
        ctx = HostContext(host=Host("web1"), connection=MagicMock())
        return TextReplaceModule(args, ctx)

    def test_diff_noop_when_equal(self):
        module = self.make_module(path="/f", regexp="^a", line="a=1")
        assert module.diff("a=1\n").noop

    def test_diff_replacement(self):
        module = self.make_module(path="/f", regexp="^a", line="a=2")
        action = module.diff("x\na=1\n")
        assert not action.noop
        assert action.steps == ["x\na=2\n"]
        assert "line 2" in action.description

    def test_diff_no_match_raises(self):
        module = self.make_module(path="/f", regexp="^z", line="z=1")
        with pytest.raises(NoMatchError):
            module.diff("a=1\n")

    def test_diff_touches_nothing(self):
        module = self.make_module(path="/f", regexp="^a", line="a=2")
        module.diff("a=1\n")
        module.connection.run.assert_not_called()


class TestTextReplaceValidation:
    """Parameter checks."""

    @pytest.mark.asyncio
    async def test_invalid_regexp(self):
        conn = MagicMock()
        conn.run = AsyncMock(return_value=RunResult(rc=0, stdout="", stderr=""))
        ctx = HostContext(host=Host("web1"), connection=conn)
        task = replace_task(path="/f", regexp="([", line="x")

        result = await execute(task, ctx, task.args)

        assert result.error == "module_param_error"
        conn.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_line_required(self):
        ctx = HostContext(host=Host("web1"), connection=MagicMock())
        task = replace_task(path="/f", regexp="x")

        result = await execute(task, ctx, task.args)

        assert "missing required argument: line" in result.msg
