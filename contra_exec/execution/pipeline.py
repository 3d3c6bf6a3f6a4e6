"""
Pipeline orchestrator
Sequences workspace preparation, retrieval, unpacking, execution, diffing
and packaging for a single job
"""

import shutil
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence

import structlog

from contra_exec.config import WorkerConfig
from contra_exec.execution.archive import normalize_line_endings, unpack_archive
from contra_exec.execution.diff import diff_trees
from contra_exec.execution.errors import FilesystemError, JobError, ScriptExecutionError
from contra_exec.execution.packager import package_diff
from contra_exec.execution.sandbox import run_control_script
from contra_exec.execution.snapshot import take_snapshot
from contra_exec.execution.workspace import Workspace, locate_payload_root
from contra_exec.models import Collection
from contra_exec.storage.content_store import ContentStore

logger = structlog.get_logger()


class PipelineStage(Enum):
    """Pipeline states, visited in declaration order"""
    IDLE = "idle"
    PREPARING = "preparing"
    RETRIEVING = "retrieving"
    UNPACKING = "unpacking"
    PLACING = "placing"
    SNAPSHOT_BEFORE = "snapshot_before"
    EXECUTING = "executing"
    SNAPSHOT_AFTER = "snapshot_after"
    DIFFING = "diffing"
    PACKAGING = "packaging"
    DONE = "done"
    FAILED = "failed"


@dataclass
class JobOutcome:
    """Structured result of one pipeline run"""
    output: bytes = b""
    artifact_path: Optional[Path] = None
    script_error: Optional[ScriptExecutionError] = None
    failed_stage: Optional[PipelineStage] = None
    error: Optional[JobError] = None
    stages: List[PipelineStage] = field(default_factory=list)
    duration: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def as_tuple(self):
        """(captured output, artifact path, error)"""
        return self.output, self.artifact_path, self.error or self.script_error


class JobPipeline:
    """
    Runs jobs one at a time inside a Workspace

    Per-job faults end the run in FAILED and are returned on the outcome.
    ConnectivityError raised by the content store propagates to the caller.
    """

    def __init__(
        self,
        workspace: Workspace,
        content_store: ContentStore,
        shell: str = "/bin/bash",
        script_timeout: Optional[float] = None,
        tool_timeout: Optional[float] = None,
        normalize_command: Sequence[str] = ("dos2unix",),
        collect_output: bool = True,
        output_archive_name: str = "output.tar.gz"
    ):
        self.workspace = workspace
        self.content_store = content_store
        self.shell = shell
        self.script_timeout = script_timeout
        self.tool_timeout = tool_timeout
        self.normalize_command = list(normalize_command)
        self.collect_output = collect_output
        self.output_archive_name = output_archive_name
        self.stage = PipelineStage.IDLE

    @classmethod
    def from_config(
        cls,
        config: WorkerConfig,
        content_store: ContentStore,
        workspace: Optional[Workspace] = None
    ) -> "JobPipeline":
        return cls(
            workspace=workspace or Workspace(config.exec_path),
            content_store=content_store,
            shell=config.script_shell,
            script_timeout=config.script_timeout,
            tool_timeout=config.tool_timeout,
            normalize_command=config.normalize_command,
            collect_output=config.collect_output,
            output_archive_name=config.output_archive_name
        )

    def _enter(self, outcome: JobOutcome, stage: PipelineStage, job_id: str):
        logger.info(
            "job_state_transition",
            job_id=job_id,
            from_state=self.stage.value,
            to_state=stage.value
        )
        self.stage = stage
        outcome.stages.append(stage)

    async def execute(
        self,
        data_file_id: str,
        control_file_id: str,
        job_id: Optional[str] = None
    ) -> JobOutcome:
        """
        Run one job end to end

        Args:
            data_file_id: Content store id of the data archive
            control_file_id: Content store id of the control script
            job_id: Identifier used in log events

        Returns:
            JobOutcome; a non-zero script exit sets script_error but the
            job still completes and its output is still packaged
        """
        job_id = job_id or data_file_id
        outcome = JobOutcome()
        started = time.monotonic()
        self.stage = PipelineStage.IDLE
        try:
            await self._run(outcome, data_file_id, control_file_id, job_id)
            self._enter(outcome, PipelineStage.DONE, job_id)
        except JobError as e:
            outcome.failed_stage = self.stage
            outcome.error = e
            logger.error("job_stage_failed", job_id=job_id, stage=self.stage.value, error=str(e))
            self._enter(outcome, PipelineStage.FAILED, job_id)
        finally:
            outcome.duration = time.monotonic() - started
            if self.stage not in (PipelineStage.DONE, PipelineStage.FAILED):
                # ConnectivityError or cancellation left the run unfinished
                self.stage = PipelineStage.IDLE
        return outcome

    async def _run(self, outcome: JobOutcome, data_file_id: str, control_file_id: str, job_id: str):
        ws = self.workspace

        self._enter(outcome, PipelineStage.PREPARING, job_id)
        ws.prepare()

        self._enter(outcome, PipelineStage.RETRIEVING, job_id)
        data_fd = await self.content_store.retrieve(data_file_id, Collection.DATA, ws.src)
        control_fd = await self.content_store.retrieve(
            control_file_id, Collection.CONTROL, ws.src, executable=True
        )
        control_name = Path(control_fd.filename).name
        await normalize_line_endings(ws.src / control_name, self.normalize_command, self.tool_timeout)

        self._enter(outcome, PipelineStage.UNPACKING, job_id)
        await unpack_archive(ws.src / Path(data_fd.filename).name, ws.run, self.tool_timeout)

        self._enter(outcome, PipelineStage.PLACING, job_id)
        exec_dir = locate_payload_root(ws.run)
        try:
            shutil.copy(ws.src / control_name, exec_dir / control_name)
        except OSError as e:
            raise FilesystemError(exec_dir / control_name, e) from e
        logger.info("control_script_placed", job_id=job_id, exec_dir=str(exec_dir))

        before = None
        if self.collect_output:
            self._enter(outcome, PipelineStage.SNAPSHOT_BEFORE, job_id)
            before = take_snapshot(ws.run)

        self._enter(outcome, PipelineStage.EXECUTING, job_id)
        result = await run_control_script(exec_dir, control_name, self.shell, self.script_timeout)
        outcome.output = result.output
        outcome.script_error = result.error

        if not self.collect_output:
            return

        self._enter(outcome, PipelineStage.SNAPSHOT_AFTER, job_id)
        after = take_snapshot(ws.run)

        self._enter(outcome, PipelineStage.DIFFING, job_id)
        diff = diff_trees(before, after)
        if diff is None:
            logger.info("no_changes_detected", job_id=job_id)
            return

        self._enter(outcome, PipelineStage.PACKAGING, job_id)
        outcome.artifact_path = await package_diff(
            ws.root, ws.out, self.output_archive_name, diff, self.tool_timeout
        )
