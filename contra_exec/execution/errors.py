"""
Error taxonomy for the execution worker

ConnectivityError is the only process-fatal error. JobError subclasses abort
the current job and are recorded against its task. ScriptExecutionError is
informational: the job still completes.
"""

from pathlib import Path
from typing import Optional, Sequence


class ExecError(Exception):
    """Base class for all worker errors"""


class ConnectivityError(ExecError):
    """Queue, content store or status store is unreachable"""


class JobError(ExecError):
    """A fault that aborts the current job only"""


class RetrievalError(JobError):
    """Stored input file is missing or unreadable"""


class UnsupportedFormatError(JobError):
    """Archive extension has no unpack/pack command"""

    def __init__(self, filename: str, operation: str = "unpack"):
        super().__init__(f"cannot {operation} {filename!r}: unsupported archive format")
        self.filename = filename
        self.operation = operation


class ExternalToolError(JobError):
    """An unpack, pack or normalize subprocess failed"""

    def __init__(
        self,
        command: Sequence[str],
        returncode: Optional[int],
        output: bytes = b"",
        reason: Optional[str] = None
    ):
        detail = reason or f"exited with status {returncode}"
        text = output.decode("utf-8", errors="replace").strip()
        message = f"{' '.join(command)} {detail}"
        if text:
            message = f"{message}: {text}"
        super().__init__(message)
        self.command = list(command)
        self.returncode = returncode
        self.output = output


class FilesystemError(JobError):
    """Snapshot, copy or stat failure"""

    def __init__(self, path: Path, cause: OSError):
        super().__init__(f"{path}: {cause.strerror or cause}")
        self.path = Path(path)


class ScriptExecutionError(ExecError):
    """Control script exited with a non-zero status"""

    def __init__(self, returncode: int, message: Optional[str] = None):
        super().__init__(message or f"control script exited with status {returncode}")
        self.returncode = returncode


class ScriptTimeoutError(ScriptExecutionError):
    """Control script exceeded its wall-clock limit and was killed"""

    def __init__(self, timeout: float, returncode: int = -9):
        super().__init__(returncode, f"control script timed out after {timeout} seconds")
        self.timeout = timeout
