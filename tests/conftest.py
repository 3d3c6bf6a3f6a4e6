"""
Pytest configuration and shared fixtures
"""

import io
import tarfile
from pathlib import Path
from typing import Dict, Tuple

import pytest

from contra_exec.execution.errors import RetrievalError
from contra_exec.execution.pipeline import JobPipeline
from contra_exec.execution.workspace import Workspace
from contra_exec.models import Collection, FileDescriptor
from contra_exec.storage.content_store import ContentStore


class InMemoryContentStore(ContentStore):
    """ContentStore keeping files in a dict instead of Supabase"""

    def __init__(self):
        super().__init__(client=None)
        self.files: Dict[Tuple[str, Collection], Tuple[str, bytes]] = {}

    def put(self, file_id: str, collection: Collection, filename: str, data: bytes) -> str:
        self.files[(file_id, Collection(collection))] = (filename, data)
        return file_id

    async def open(self, file_id, collection):
        collection = Collection(collection)
        try:
            filename, data = self.files[(file_id, collection)]
        except KeyError:
            raise RetrievalError(f"no {collection.value} file with id {file_id}")
        return data, FileDescriptor(file_id=file_id, filename=filename, collection=collection)

    async def _store(self, file_id, collection, meta, data):
        self.put(file_id, collection, meta.get("filename", file_id), data)


def make_tar(files: Dict[str, bytes], gzip: bool = True) -> bytes:
    """Build a tar archive in memory from {path: content}"""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz" if gzip else "w") as tar:
        for name, content in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(content))
    return buf.getvalue()


def read_tar(path: Path) -> Dict[str, bytes]:
    """Map of member name to content for every regular file in an archive"""
    with tarfile.open(path) as tar:
        return {
            member.name: tar.extractfile(member).read()
            for member in tar.getmembers()
            if member.isfile()
        }


def write_tree(root: Path, files: Dict[str, bytes]) -> None:
    for name, content in files.items():
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)


@pytest.fixture
def workspace(tmp_path) -> Workspace:
    """Workspace rooted in a per-test temporary directory"""
    return Workspace(tmp_path / "exec_dir")


@pytest.fixture
def content_store() -> InMemoryContentStore:
    return InMemoryContentStore()


@pytest.fixture
def pipeline(workspace, content_store) -> JobPipeline:
    """Pipeline using sed for line ending normalization"""
    return JobPipeline(
        workspace=workspace,
        content_store=content_store,
        script_timeout=30,
        tool_timeout=30,
        normalize_command=["sed", "-i", "s/\\r$//"]
    )
