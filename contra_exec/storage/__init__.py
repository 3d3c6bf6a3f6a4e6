"""
Storage module for contra-exec
Input retrieval and output upload via Supabase Storage
"""

from contra_exec.storage.content_store import ContentStore, OutputHandle, get_content_store

__all__ = ["ContentStore", "OutputHandle", "get_content_store"]
