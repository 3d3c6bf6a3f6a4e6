"""
Execution sandbox
Runs the control script through a shell with combined output capture
"""

import asyncio
import os
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import structlog

from contra_exec.execution.errors import ExternalToolError, ScriptExecutionError, ScriptTimeoutError

logger = structlog.get_logger()


@dataclass
class ScriptResult:
    """Result of a control script run"""
    output: bytes
    returncode: int
    timed_out: bool = False
    error: Optional[ScriptExecutionError] = None

    @property
    def success(self) -> bool:
        return self.error is None


async def run_control_script(
    workdir: Path,
    script_name: str,
    shell: str = "/bin/bash",
    timeout: Optional[float] = None
) -> ScriptResult:
    """
    Run workdir/script_name with workdir as the current directory

    stdout and stderr share one pipe so interleaving is preserved. A non-zero
    exit or a timeout is reported through ScriptResult.error and the output
    captured so far is kept.

    Args:
        workdir: Directory the script runs in
        script_name: Script path relative to workdir
        shell: Interpreter used to run the script
        timeout: Wall-clock limit in seconds, None or 0 for no limit

    Returns:
        ScriptResult

    Raises:
        ExternalToolError: if the shell cannot be started
    """
    logger.info("executing_script", workdir=str(workdir), script=script_name, timeout=timeout)

    script_path = str(Path(workdir) / script_name)
    try:
        process = await asyncio.create_subprocess_exec(
            shell,
            script_path,
            cwd=str(workdir),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            start_new_session=True  # own process group, killed as a whole on timeout
        )
    except OSError as e:
        raise ExternalToolError((shell, script_path), None, reason=f"could not start: {e.strerror or e}") from e

    chunks = []

    async def drain():
        while True:
            chunk = await process.stdout.read(65536)
            if not chunk:
                break
            chunks.append(chunk)
        await process.wait()

    try:
        await asyncio.wait_for(drain(), timeout=timeout or None)
    except asyncio.TimeoutError:
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        await process.wait()
        logger.warning("script_timeout", workdir=str(workdir), timeout=timeout)
        return ScriptResult(
            output=b"".join(chunks),
            returncode=process.returncode,
            timed_out=True,
            error=ScriptTimeoutError(timeout, process.returncode)
        )

    returncode = process.returncode
    error = ScriptExecutionError(returncode) if returncode != 0 else None
    logger.info("script_finished", returncode=returncode)
    return ScriptResult(output=b"".join(chunks), returncode=returncode, error=error)
