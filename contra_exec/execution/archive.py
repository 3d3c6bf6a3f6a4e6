"""
Archive codec
Extension-driven dispatch of unpack/pack commands to external tools
"""

import asyncio
import os
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import structlog

from contra_exec.execution.errors import ExternalToolError, UnsupportedFormatError

logger = structlog.get_logger()

UNPACK_FLAGS = {
    ".tar": ("tar", "-xf"),
    ".gz": ("tar", "-xzf"),
    ".gzip": ("tar", "-xzf"),
    ".7z": ("7za", "x"),
    ".7zip": ("7za", "x"),
}

PACK_FLAGS = {
    ".tar": ("tar", "-cf"),
    ".gz": ("tar", "-czf"),
    ".gzip": ("tar", "-czf"),
}


@dataclass(frozen=True)
class ArchiveCommand:
    """An external command and the directory it runs in"""
    argv: tuple
    cwd: Path


def _extension(filename) -> str:
    return Path(filename).suffix.lower()


def select_unpack(archive_path, workdir: Path) -> Optional[ArchiveCommand]:
    """Extraction command for archive_path, run inside workdir, or None"""
    flags = UNPACK_FLAGS.get(_extension(archive_path))
    if flags is None:
        return None
    return ArchiveCommand(argv=(*flags, str(archive_path)), cwd=Path(workdir))


def select_pack(archive_name: str, dir_to_pack: str, workdir: Path) -> Optional[ArchiveCommand]:
    """Command creating archive_name from dir_to_pack, both relative to workdir, or None"""
    flags = PACK_FLAGS.get(_extension(archive_name))
    if flags is None:
        return None
    return ArchiveCommand(argv=(*flags, archive_name, dir_to_pack), cwd=Path(workdir))


async def run_tool(argv: Sequence[str], cwd: Optional[Path] = None, timeout: Optional[float] = None) -> bytes:
    """
    Run an external tool and return its combined stdout/stderr

    Raises:
        ExternalToolError: on non-zero exit, missing executable or timeout
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd) if cwd else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            start_new_session=True
        )
    except OSError as e:
        raise ExternalToolError(argv, None, reason=f"could not start: {e.strerror or e}") from e

    try:
        output, _ = await asyncio.wait_for(process.communicate(), timeout=timeout or None)
    except asyncio.TimeoutError:
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        await process.wait()
        raise ExternalToolError(argv, process.returncode, reason=f"timed out after {timeout}s")

    logger.debug("tool_output", command=argv[0], returncode=process.returncode,
                 output=output.decode("utf-8", errors="replace"))
    if process.returncode != 0:
        raise ExternalToolError(argv, process.returncode, output)
    return output


async def run_archive_command(command: ArchiveCommand, timeout: Optional[float] = None) -> bytes:
    return await run_tool(command.argv, cwd=command.cwd, timeout=timeout)


async def unpack_archive(archive_path: Path, target_dir: Path, timeout: Optional[float] = None) -> bytes:
    """
    Extract archive_path into target_dir

    Raises:
        UnsupportedFormatError: if the extension is not recognised
        ExternalToolError: if extraction fails
    """
    command = select_unpack(Path(archive_path).resolve(), target_dir)
    if command is None:
        raise UnsupportedFormatError(Path(archive_path).name, "unpack")
    logger.info("unpacking_archive", archive=str(archive_path), target=str(target_dir))
    return await run_archive_command(command, timeout)


async def normalize_line_endings(path: Path, command: Sequence[str], timeout: Optional[float] = None) -> None:
    """Convert CRLF line endings of path in place using the configured tool"""
    if not command:
        return
    await run_tool([*command, str(path)], timeout=timeout)
