"""
Execution queue consumer
Reliable list queue on Upstash Redis with manual acknowledgment
"""

from dataclasses import dataclass
from typing import Optional

import httpx
import structlog
from upstash_redis.asyncio import Redis
from upstash_redis.errors import UpstashError

from contra_exec.config import WorkerConfig
from contra_exec.execution.errors import ConnectivityError
from contra_exec.models import JobDescriptor

logger = structlog.get_logger()


@dataclass
class Delivery:
    """A message taken from the queue and held until acknowledged"""
    body: str
    consumer: "QueueConsumer"
    acked: bool = False

    async def ack(self) -> None:
        if not self.acked:
            await self.consumer.ack(self)
            self.acked = True


class QueueConsumer:
    """
    Non-exclusive consumer of a Redis list queue

    Producers LPUSH onto the queue. fetch() atomically moves the oldest message
    into this consumer's processing list, and ack() removes it from there.
    Messages left in the processing list by a crashed worker are put back by
    recover(), giving at-least-once delivery.
    """

    def __init__(self, redis: Redis, queue_name: str, consumer_id: str):
        self.redis = redis
        self.queue_name = queue_name
        self.consumer_id = consumer_id

    @classmethod
    def from_config(cls, config: WorkerConfig) -> "QueueConsumer":
        redis = Redis(url=config.upstash_redis_rest_url, token=config.upstash_redis_rest_token)
        return cls(redis, config.execution_queue, config.consumer_id)

    @property
    def processing_list(self) -> str:
        return f"{self.queue_name}:processing:{self.consumer_id}"

    async def _call(self, action: str, coro):
        try:
            return await coro
        except (httpx.TransportError, UpstashError) as e:
            logger.error("queue_unreachable", action=action, queue=self.queue_name, error=str(e))
            raise ConnectivityError(f"queue {action} failed: {e}") from e

    async def ping(self) -> None:
        await self._call("ping", self.redis.ping())

    async def fetch(self) -> Optional[Delivery]:
        """Take the next message, or None when the queue is empty"""
        body = await self._call(
            "fetch",
            self.redis.lmove(self.queue_name, self.processing_list, "RIGHT", "LEFT")
        )
        if body is None:
            return None
        logger.debug("message_delivered", queue=self.queue_name, consumer=self.consumer_id)
        return Delivery(body=body, consumer=self)

    async def ack(self, delivery: Delivery) -> None:
        await self._call("ack", self.redis.lrem(self.processing_list, 1, delivery.body))
        logger.debug("message_acked", queue=self.queue_name, consumer=self.consumer_id)

    async def recover(self) -> int:
        """Requeue unacknowledged messages from a previous run of this consumer"""
        recovered = 0
        while True:
            body = await self._call(
                "recover",
                self.redis.lmove(self.processing_list, self.queue_name, "RIGHT", "RIGHT")
            )
            if body is None:
                break
            recovered += 1
        if recovered:
            logger.info("messages_recovered", queue=self.queue_name, count=recovered)
        return recovered

    async def publish(self, descriptor: JobDescriptor) -> None:
        await self._call(
            "publish",
            self.redis.lpush(self.queue_name, descriptor.model_dump_json(by_alias=True))
        )
        logger.info("job_published", queue=self.queue_name, task_id=descriptor.task_id)

    async def close(self) -> None:
        await self.redis.close()
