"""
Supabase-backed content store
Opaque-id file retrieval and upload across the data, control and output collections
"""

import io
import os
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import httpx
import structlog
from supabase import Client, create_client

from contra_exec.config import get_worker_config
from contra_exec.execution.errors import ConnectivityError, FilesystemError, RetrievalError
from contra_exec.models import Collection, FileDescriptor

logger = structlog.get_logger()

FILES_TABLE = "files"


def _call(action: str, fn: Callable[[], Any], error_cls=RetrievalError) -> Any:
    """Run a client call, mapping transport failures to ConnectivityError"""
    try:
        return fn()
    except httpx.TransportError as e:
        logger.error("content_store_unreachable", action=action, error=str(e))
        raise ConnectivityError(f"content store unreachable during {action}: {e}") from e
    except Exception as e:
        raise error_cls(f"{action} failed: {e}") from e


class OutputHandle:
    """Writable handle for a new stored file; the upload happens on close()"""

    def __init__(self, store: "ContentStore", collection: Collection):
        self.store = store
        self.collection = collection
        self.file_id = uuid.uuid4().hex
        self.meta: Dict[str, Any] = {}
        self._buffer = io.BytesIO()
        self.closed = False

    def set_meta(self, **meta) -> None:
        self.meta.update(meta)

    def write(self, data: bytes) -> int:
        return self._buffer.write(data)

    async def close(self) -> str:
        """Upload buffered content and metadata, returning the new file id"""
        if not self.closed:
            await self.store._store(self.file_id, self.collection, self.meta, self._buffer.getvalue())
            self.closed = True
        return self.file_id


class ContentStore:
    """
    Content store client

    Each collection is a Supabase Storage bucket. The `files` table maps an
    opaque file id to its collection, filename and storage path.
    """

    def __init__(self, client: Client):
        self.client = client

    @staticmethod
    def storage_path(file_id: str, filename: str) -> str:
        return f"{file_id}/{Path(filename).name}"

    async def open(self, file_id: str, collection: Collection) -> Tuple[bytes, FileDescriptor]:
        """
        Read a stored file and its metadata

        Raises:
            RetrievalError: if the file is unknown or its content cannot be read
            ConnectivityError: if the store is unreachable
        """
        collection = Collection(collection)
        result = _call(
            "file lookup",
            lambda: self.client.table(FILES_TABLE)
            .select("*")
            .eq("id", file_id)
            .eq("collection", collection.value)
            .limit(1)
            .execute()
        )
        if not result.data:
            raise RetrievalError(f"no {collection.value} file with id {file_id}")

        row = result.data[0]
        data = _call(
            "file download",
            lambda: self.client.storage.from_(collection.value).download(row["storage_path"])
        )
        fd = FileDescriptor(file_id=file_id, filename=row["filename"], collection=collection)
        logger.info("file_retrieved", file_id=file_id, collection=collection.value,
                    filename=fd.filename, size_bytes=len(data))
        return data, fd

    async def retrieve(
        self,
        file_id: str,
        collection: Collection,
        dest_dir: Path,
        executable: bool = False
    ) -> FileDescriptor:
        """Write a stored file into dest_dir under its stored filename"""
        data, fd = await self.open(file_id, collection)
        target = Path(dest_dir) / Path(fd.filename).name
        try:
            target.write_bytes(data)
            if executable:
                os.chmod(target, 0o700)
        except OSError as e:
            raise FilesystemError(target, e) from e
        return fd

    def create(self, collection: Collection) -> OutputHandle:
        return OutputHandle(self, Collection(collection))

    async def upload(self, path: Path, collection: Collection = Collection.OUTPUT) -> str:
        """Upload a local file, returning its new file id"""
        path = Path(path)
        handle = self.create(collection)
        handle.set_meta(filename=path.name)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise FilesystemError(path, e) from e
        handle.write(data)
        return await handle.close()

    async def _store(self, file_id: str, collection: Collection, meta: Dict[str, Any], data: bytes) -> None:
        filename = meta.get("filename") or file_id
        storage_path = self.storage_path(file_id, filename)
        _call(
            "file upload",
            lambda: self.client.storage.from_(collection.value).upload(
                path=storage_path,
                file=data,
                file_options={"content-type": "application/octet-stream", "upsert": "true"}
            ),
            error_cls=ConnectivityError
        )
        _call(
            "file registration",
            lambda: self.client.table(FILES_TABLE).insert({
                "id": file_id,
                "collection": collection.value,
                "filename": filename,
                "storage_path": storage_path,
                "size_bytes": len(data),
                **{k: v for k, v in meta.items() if k != "filename"}
            }).execute(),
            error_cls=ConnectivityError
        )
        logger.info("file_uploaded", file_id=file_id, collection=collection.value,
                    storage_path=storage_path, size_bytes=len(data))


# Singleton instance
_content_store: Optional[ContentStore] = None


def get_content_store() -> ContentStore:
    """Get or create content store singleton"""
    global _content_store
    if _content_store is None:
        config = get_worker_config()
        if not config.supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set for the content store")
        _content_store = ContentStore(create_client(config.supabase_url, config.supabase_key))
    return _content_store
