"""Tests for external command execution"""

import pytest

from vdisync.remote.index import RemoteHashIndex
from vdisync.remote.runner import EXIT_CANNOT_EXECUTE, EXIT_NOT_FOUND, CommandRunner


@pytest.fixture
def not_executable(temp_dir):
    path = temp_dir / "rclone"
    path.write_text("#!/bin/sh\necho never\n")
    path.chmod(0o644)
    return path


class TestCommandRunner:
    """Real subprocesses"""

    @pytest.mark.asyncio
    async def test_captures_stdout(self):
        result = await CommandRunner().run("echo", ["hello"])
        assert result.ok
        assert result.stdout.strip() == "hello"

    @pytest.mark.asyncio
    async def test_exit_status_is_returned(self):
        result = await CommandRunner().run("sh", ["-c", "echo oops >&2; exit 3"])
        assert result.exit_status == 3
        assert not result.ok
        assert "oops" in result.stderr

    @pytest.mark.asyncio
    async def test_missing_command(self):
        result = await CommandRunner().run("definitely-not-a-command-vdisync", [])
        assert result.exit_status == EXIT_NOT_FOUND

    @pytest.mark.asyncio
    async def test_command_without_execute_permission(self, not_executable):
        result = await CommandRunner().run(str(not_executable), ["md5sum"])
        assert result.exit_status == EXIT_CANNOT_EXECUTE
        assert not result.ok

    @pytest.mark.asyncio
    async def test_unusable_binary_degrades_remote_index(self, not_executable):
        index = RemoteHashIndex(CommandRunner({}), rclone_binary=str(not_executable))
        assert await index.fetch("remote:/backups/VM1", "disk.vdi.part.*") == {}

    @pytest.mark.asyncio
    async def test_env_is_passed(self):
        runner = CommandRunner(env={"PATH": "/usr/bin:/bin", "USER": "backup"})
        result = await runner.run("sh", ["-c", "echo $USER"])
        assert result.stdout.strip() == "backup"
