"""
Job execution engine for contra-exec
Snapshotting, diffing, archive handling and sandboxed script execution
"""

from contra_exec.execution.diff import diff_trees, overlay
from contra_exec.execution.errors import (
    ConnectivityError,
    ExecError,
    ExternalToolError,
    FilesystemError,
    JobError,
    RetrievalError,
    ScriptExecutionError,
    ScriptTimeoutError,
    UnsupportedFormatError,
)
from contra_exec.execution.snapshot import FileTreeNode, take_snapshot
from contra_exec.execution.workspace import Workspace, locate_payload_root

__all__ = [
    "ConnectivityError",
    "ExecError",
    "ExternalToolError",
    "FileTreeNode",
    "FilesystemError",
    "JobError",
    "RetrievalError",
    "ScriptExecutionError",
    "ScriptTimeoutError",
    "UnsupportedFormatError",
    "Workspace",
    "diff_trees",
    "locate_payload_root",
    "overlay",
    "take_snapshot",
]
