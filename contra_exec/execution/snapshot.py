"""
Snapshot engine
Captures the state of a directory tree as an immutable FileTreeNode value
"""

import os
import stat
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Dict, Iterator, Optional, Tuple

from pydantic import BaseModel, ConfigDict, model_validator

from contra_exec.execution.errors import FilesystemError


class FileTreeNode(BaseModel):
    """One filesystem entry at a point in time"""
    model_config = ConfigDict(frozen=True)

    is_dir: bool
    name: str
    modified_at_ns: int
    size: int = 0
    children: Optional[Dict[str, "FileTreeNode"]] = None

    @model_validator(mode="after")
    def check_children(self):
        if not self.is_dir and self.children:
            raise ValueError(f"file node {self.name!r} cannot have children")
        return self

    @property
    def modified_at(self) -> datetime:
        return datetime.fromtimestamp(self.modified_at_ns / 1e9, tz=timezone.utc)

    def walk(self, prefix: PurePosixPath = PurePosixPath()) -> Iterator[Tuple[PurePosixPath, "FileTreeNode"]]:
        """Yield (path relative to this node, node) for every descendant, parents first"""
        for name in sorted(self.children or {}):
            child = self.children[name]
            child_path = prefix / name
            yield child_path, child
            yield from child.walk(child_path)

    def flatten(self) -> Dict[str, "FileTreeNode"]:
        """Path-keyed view of all descendants, without nested children"""
        return {
            str(path): node.model_copy(update={"children": {} if node.is_dir else None})
            for path, node in self.walk()
        }

    def find(self, relative_path: str) -> Optional["FileTreeNode"]:
        node = self
        for part in PurePosixPath(relative_path).parts:
            if not node.children or part not in node.children:
                return None
            node = node.children[part]
        return node


FileTreeNode.model_rebuild()


def take_snapshot(path: Path) -> FileTreeNode:
    """
    Recursively capture the tree rooted at path

    Symlinks are recorded as leaves and never followed. Any stat or listing
    failure at any depth invalidates the whole snapshot.

    Raises:
        FilesystemError: if any entry cannot be read
    """
    path = Path(path)
    try:
        st = os.lstat(path)
    except OSError as e:
        raise FilesystemError(path, e) from e

    is_dir = stat.S_ISDIR(st.st_mode)
    children = None
    if is_dir:
        try:
            names = os.listdir(path)
        except OSError as e:
            raise FilesystemError(path, e) from e
        children = {name: take_snapshot(path / name) for name in names}

    return FileTreeNode(
        is_dir=is_dir,
        name=path.name,
        modified_at_ns=st.st_mtime_ns,
        size=st.st_size,
        children=children
    )
