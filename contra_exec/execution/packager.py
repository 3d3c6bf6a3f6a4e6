"""
Output packager
Copies the files named in a diff tree into a staging area and archives them
"""

import os
import shutil
from pathlib import Path
from typing import Optional

import structlog

from contra_exec.execution.archive import run_archive_command, select_pack
from contra_exec.execution.errors import FilesystemError, UnsupportedFormatError
from contra_exec.execution.snapshot import FileTreeNode

logger = structlog.get_logger()


def copy_tree(source_root: Path, dest_root: Path, node: FileTreeNode) -> int:
    """
    Copy source_root/node.name into dest_root following the diff tree

    Only entries named in the tree are copied. File permission bits are kept.

    Returns:
        Number of files copied

    Raises:
        FilesystemError: on any copy failure
    """
    src = Path(source_root) / node.name
    dst = Path(dest_root) / node.name
    try:
        if node.is_dir:
            os.mkdir(dst, 0o755)
        else:
            shutil.copy(src, dst, follow_symlinks=False)
            return 1
    except OSError as e:
        raise FilesystemError(Path(e.filename or src), e) from e

    return sum(
        copy_tree(src, dst, child)
        for child in (node.children or {}).values()
    )


async def package_diff(
    source_root: Path,
    staging_dir: Path,
    archive_name: str,
    diff: FileTreeNode,
    timeout: Optional[float] = None
) -> Path:
    """
    Stage the diff tree under staging_dir and pack it into staging_dir/archive_name

    The staging directory is reset on every call. The archive's top-level
    entry is the diff root's name.

    Raises:
        UnsupportedFormatError: if archive_name has no pack command
        FilesystemError: if staging fails
        ExternalToolError: if packing fails
    """
    command = select_pack(archive_name, diff.name, staging_dir)
    if command is None:
        raise UnsupportedFormatError(archive_name, "pack")

    staging_dir = Path(staging_dir)
    try:
        if staging_dir.exists():
            shutil.rmtree(staging_dir)
        staging_dir.mkdir(mode=0o755, parents=True)
    except OSError as e:
        raise FilesystemError(staging_dir, e) from e

    copied = copy_tree(source_root, staging_dir, diff)
    logger.info("diff_staged", staging_dir=str(staging_dir), files=copied)

    await run_archive_command(command, timeout)
    archive_path = staging_dir / archive_name
    logger.info("output_packed", archive=str(archive_path))
    return archive_path
