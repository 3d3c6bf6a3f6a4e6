"""
contra-exec Worker Agent
Queue-based job consumption, execution and status reporting
"""

import asyncio
import signal
import sys
from typing import Optional

import structlog
from pydantic import ValidationError

from contra_exec.config import WorkerConfig, get_worker_config
from contra_exec.database import StatusStore, get_status_store
from contra_exec.execution.errors import ConnectivityError, JobError
from contra_exec.execution.pipeline import JobOutcome, JobPipeline
from contra_exec.log import configure_logging
from contra_exec.models import Collection, JobDescriptor, TaskStatus
from contra_exec.queue import Delivery, QueueConsumer
from contra_exec.storage import ContentStore, get_content_store

logger = structlog.get_logger()


class ExecWorker:
    """
    Queue-based worker that:
    1. Requeues messages it left unacknowledged in a previous run
    2. Takes one job message at a time from the execution queue
    3. Runs the job pipeline in its own workspace
    4. Uploads the output archive, if any
    5. Records the task status, then acknowledges the message
    """

    def __init__(
        self,
        config: WorkerConfig,
        consumer: QueueConsumer,
        content_store: ContentStore,
        status_store: StatusStore,
        pipeline: Optional[JobPipeline] = None
    ):
        self.config = config
        self.consumer = consumer
        self.content_store = content_store
        self.status_store = status_store
        self.pipeline = pipeline or JobPipeline.from_config(config, content_store)
        self.running = False
        self.is_busy = False

    async def start(self):
        """Consume jobs until stopped"""
        logger.info("exec_worker_starting", consumer=self.consumer.consumer_id,
                    queue=self.consumer.queue_name, workspace=str(self.pipeline.workspace.root))
        await self.consumer.ping()
        await self.consumer.recover()

        self.running = True
        while self.running:
            delivery = await self.consumer.fetch()
            if delivery is None:
                await asyncio.sleep(self.config.poll_interval)
                continue
            await self.process_delivery(delivery)

        logger.info("exec_worker_stopped")

    async def process_delivery(self, delivery: Delivery) -> Optional[JobOutcome]:
        """
        Run the job in a delivered message and record its result

        A malformed message is acknowledged and dropped. ConnectivityError
        propagates with the message still unacknowledged.
        """
        try:
            descriptor = JobDescriptor.model_validate_json(delivery.body)
        except ValidationError as e:
            logger.error("malformed_job_message", error=str(e), body=delivery.body[:200])
            await delivery.ack()
            return None

        self.is_busy = True
        try:
            outcome = await self.pipeline.execute(
                descriptor.data_file_id,
                descriptor.control_file_id,
                job_id=descriptor.task_id
            )
            await self.report(descriptor, outcome)
        finally:
            self.is_busy = False

        await delivery.ack()
        return outcome

    async def report(self, descriptor: JobDescriptor, outcome: JobOutcome) -> None:
        """Upload the output archive and write the task record"""
        output_file_id = ""
        upload_error = None
        if outcome.artifact_path is not None:
            try:
                output_file_id = await self.content_store.upload(outcome.artifact_path, Collection.OUTPUT)
            except JobError as e:
                logger.error("artifact_upload_failed", task_id=descriptor.task_id, error=str(e))
                upload_error = e

        output = outcome.output.decode("utf-8", errors="replace")
        if upload_error is not None:
            status = TaskStatus.FAILED
            error = f"uploading: {upload_error}"
        elif outcome.succeeded:
            status = TaskStatus.DONE
            error = str(outcome.script_error) if outcome.script_error else None
        else:
            status = TaskStatus.FAILED
            error = f"{outcome.failed_stage.value}: {outcome.error}"

        await self.status_store.update_task(
            descriptor.task_id,
            output=output,
            status=status,
            output_file_id=output_file_id,
            error=error
        )

        if outcome.script_error:
            logger.warning("control_script_error", task_id=descriptor.task_id, error=str(outcome.script_error))
        logger.info(
            "job_completed",
            task_id=descriptor.task_id,
            status=status.value,
            output_fid=output_file_id,
            duration=round(outcome.duration, 3)
        )

    def stop(self):
        """Stop after the current job"""
        logger.info("exec_worker_stopping", busy=self.is_busy)
        self.running = False

    async def close(self):
        await self.consumer.close()


async def run_worker(config: Optional[WorkerConfig] = None):
    """Main loop entry point; exits the process on connectivity loss"""
    config = config or get_worker_config()
    worker = ExecWorker(
        config=config,
        consumer=QueueConsumer.from_config(config),
        content_store=get_content_store(),
        status_store=get_status_store()
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, worker.stop)

    try:
        await worker.start()
    except ConnectivityError as e:
        logger.error("connectivity_lost", error=str(e))
        sys.exit(1)
    finally:
        await worker.close()


async def main():
    """Main entry point for the worker"""
    config = get_worker_config()
    configure_logging(config.log_level, config.log_format)
    await run_worker(config)


if __name__ == "__main__":
    asyncio.run(main())
