"""
Task status persistence for contra-exec
"""

from contra_exec.database.client import StatusStore, get_status_store

__all__ = ["StatusStore", "get_status_store"]
