"""
Workspace manager and payload locator
"""

import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

import structlog

from contra_exec.execution.errors import FilesystemError

logger = structlog.get_logger()

WORKSPACE_MODE = 0o700


@dataclass(frozen=True)
class Workspace:
    """
    Sandbox directory layout for one job at a time

    - src: retrieved inputs
    - run: execution sandbox
    - out: packaging staging area
    """
    root: Path

    @property
    def src(self) -> Path:
        return self.root / "src"

    @property
    def run(self) -> Path:
        return self.root / "run"

    @property
    def out(self) -> Path:
        return self.root / "out"

    @classmethod
    def temporary(cls, prefix: str = "contra-exec-") -> "Workspace":
        """Workspace under a fresh temporary directory"""
        return cls(Path(tempfile.mkdtemp(prefix=prefix)) / "exec_dir")

    def prepare(self) -> None:
        """
        Remove any previous tree at root and recreate the layout

        Raises:
            FilesystemError: if the tree cannot be removed or created
        """
        try:
            if self.root.is_symlink():
                self.root.unlink()
            elif self.root.exists():
                shutil.rmtree(self.root)
            self.root.parent.mkdir(parents=True, exist_ok=True)
            for directory in (self.root, self.src, self.run, self.out):
                os.mkdir(directory, WORKSPACE_MODE)
        except OSError as e:
            raise FilesystemError(Path(e.filename or self.root), e) from e
        logger.debug("workspace_prepared", root=str(self.root))


def locate_payload_root(root: Path) -> Path:
    """
    Descend through directories that contain exactly one subdirectory

    Returns the first level holding several entries, a file, or nothing.

    Raises:
        FilesystemError: if a level cannot be listed
    """
    current = Path(root)
    while True:
        try:
            entries = list(os.scandir(current))
            if len(entries) != 1 or not entries[0].is_dir(follow_symlinks=False):
                return current
        except OSError as e:
            raise FilesystemError(current, e) from e
        current = current / entries[0].name
