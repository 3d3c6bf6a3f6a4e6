"""
Supabase status store for contra-exec
Keyed updates of task records by task id
"""

from typing import Optional, Dict, Any

import httpx
import structlog
from supabase import create_client, Client

from contra_exec.config import get_worker_config
from contra_exec.execution.errors import ConnectivityError
from contra_exec.models import TaskStatus

logger = structlog.get_logger()


class StatusStore:
    """
    Task status persistence

    Every failure is treated as connectivity loss: the message must not be
    acknowledged until the task record has been written.
    """

    def __init__(self, client: Client, table: str = "tasks"):
        self.client = client
        self.table = table

    async def update_task(
        self,
        task_id: str,
        output: str,
        status: TaskStatus,
        output_file_id: str = "",
        error: Optional[str] = None
    ) -> None:
        """Set output, status, output_fid and error on a task record"""
        update: Dict[str, Any] = {
            "output": output,
            "status": TaskStatus(status).value,
            "output_fid": output_file_id,
            "error": error,
        }
        try:
            result = self.client.table(self.table).update(update).eq("id", task_id).execute()
        except httpx.TransportError as e:
            logger.error("status_store_unreachable", task_id=task_id, error=str(e))
            raise ConnectivityError(f"status store unreachable: {e}") from e
        except Exception as e:
            logger.error("task_update_failed", task_id=task_id, error=str(e))
            raise ConnectivityError(f"task update failed: {e}") from e

        if not result.data:
            logger.warning("task_not_found", task_id=task_id)
        logger.info("task_updated", task_id=task_id, status=update["status"], output_fid=output_file_id)


# Singleton instance
_status_store: Optional[StatusStore] = None


def get_status_store() -> StatusStore:
    """
    Get or create singleton status store
    Reads configuration from environment variables
    """
    global _status_store

    if _status_store is None:
        config = get_worker_config()
        if not config.supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set for the status store")
        _status_store = StatusStore(create_client(config.supabase_url, config.supabase_key))

    return _status_store
