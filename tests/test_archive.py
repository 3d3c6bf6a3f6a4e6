"""
Unit tests for the archive codec
"""

from pathlib import Path

import pytest

from contra_exec.execution.archive import (
    normalize_line_endings,
    run_tool,
    select_pack,
    select_unpack,
    unpack_archive,
)
from contra_exec.execution.errors import ExternalToolError, UnsupportedFormatError

from conftest import make_tar


class TestCommandSelection:
    """Test extension-driven command dispatch"""

    @pytest.mark.parametrize("filename,flags", [
        ("data.tar", ("tar", "-xf")),
        ("data.tar.gz", ("tar", "-xzf")),
        ("data.gzip", ("tar", "-xzf")),
        ("data.7z", ("7za", "x")),
        ("data.7zip", ("7za", "x")),
    ])
    def test_select_unpack(self, filename, flags, tmp_path):
        command = select_unpack(filename, tmp_path)
        assert command.argv == (*flags, filename)
        assert command.cwd == tmp_path

    @pytest.mark.parametrize("filename", ["data.xyz", "data.zip", "data"])
    def test_select_unpack_unsupported(self, filename, tmp_path):
        assert select_unpack(filename, tmp_path) is None

    def test_select_pack(self, tmp_path):
        assert select_pack("out.tar", "run", tmp_path).argv == ("tar", "-cf", "out.tar", "run")
        assert select_pack("out.tar.gz", "run", tmp_path).argv == ("tar", "-czf", "out.tar.gz", "run")

    @pytest.mark.parametrize("filename", ["out.7z", "out.7zip", "out.zip"])
    def test_select_pack_unsupported(self, filename, tmp_path):
        assert select_pack(filename, "run", tmp_path) is None


class TestRunTool:
    """Test external tool invocation"""

    @pytest.mark.asyncio
    async def test_combined_output_captured(self):
        output = await run_tool(["bash", "-c", "echo out; echo err >&2"])
        assert b"out" in output
        assert b"err" in output

    @pytest.mark.asyncio
    async def test_nonzero_exit_raises(self):
        with pytest.raises(ExternalToolError) as exc_info:
            await run_tool(["bash", "-c", "echo broken >&2; exit 3"])
        assert exc_info.value.returncode == 3
        assert b"broken" in exc_info.value.output
        assert "broken" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing_executable_raises(self):
        with pytest.raises(ExternalToolError, match="could not start"):
            await run_tool(["definitely-not-a-real-tool-xyz"])

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        with pytest.raises(ExternalToolError, match="timed out"):
            await run_tool(["sleep", "5"], timeout=0.2)


class TestUnpackArchive:
    """Test extraction into a target directory"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name,gzip", [("data.tar.gz", True), ("data.tar", False)])
    async def test_unpack(self, tmp_path, name, gzip):
        archive = tmp_path / name
        archive.write_bytes(make_tar({"repo/input.txt": b"0123456789"}, gzip=gzip))
        target = tmp_path / "run"
        target.mkdir()

        await unpack_archive(archive, target)

        assert (target / "repo" / "input.txt").read_bytes() == b"0123456789"

    @pytest.mark.asyncio
    async def test_unknown_extension(self, tmp_path):
        archive = tmp_path / "data.xyz"
        archive.write_bytes(b"whatever")
        with pytest.raises(UnsupportedFormatError):
            await unpack_archive(archive, tmp_path)

    @pytest.mark.asyncio
    async def test_corrupt_archive(self, tmp_path):
        archive = tmp_path / "data.tar.gz"
        archive.write_bytes(b"not a gzip stream")
        target = tmp_path / "run"
        target.mkdir()
        with pytest.raises(ExternalToolError):
            await unpack_archive(archive, target)


class TestNormalizeLineEndings:

    @pytest.mark.asyncio
    async def test_crlf_converted(self, tmp_path):
        script = tmp_path / "run.sh"
        script.write_bytes(b"echo one\r\necho two\r\n")
        await normalize_line_endings(script, ["sed", "-i", "s/\\r$//"])
        assert script.read_bytes() == b"echo one\necho two\n"

    @pytest.mark.asyncio
    async def test_empty_command_is_noop(self, tmp_path):
        script = tmp_path / "run.sh"
        script.write_bytes(b"echo\r\n")
        await normalize_line_endings(script, [])
        assert script.read_bytes() == b"echo\r\n"
