# src/llmsentinel/consumer/queue.py
"""
In-process queue transport for the analysis pipeline.

Stands in for a managed pub/sub subscription: messages are delivered
at-least-once, each runs as its own task, concurrency is bounded by a
semaphore and rejected messages are redelivered up to a limit.
"""

import asyncio
import logging
from typing import Optional, Set, Union

from pydantic import BaseModel

from .message import QueueMessage
from .pipeline import AnalysisPipeline

logger = logging.getLogger(__name__)


class ConsumerStats(BaseModel):
    delivered: int = 0
    acked: int = 0
    nacked: int = 0
    redelivered: int = 0
    dead_lettered: int = 0


class QueueConsumer:
    """
    Pulls QueueMessages from an ``asyncio.Queue`` and hands them to the pipeline.

    Args:
        pipeline: The analysis pipeline.
        queue: Source queue; a new unbounded queue is created if omitted.
        max_concurrency: Messages processed at once.
        max_redeliveries: Redelivery attempts for a nacked message before it
            is dropped (dead-lettered).
    """

    def __init__(
        self,
        pipeline: AnalysisPipeline,
        queue: Optional["asyncio.Queue[QueueMessage]"] = None,
        max_concurrency: int = 8,
        max_redeliveries: int = 5,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.pipeline = pipeline
        self.queue: "asyncio.Queue[QueueMessage]" = queue if queue is not None else asyncio.Queue()
        self.max_concurrency = max_concurrency
        self.max_redeliveries = max_redeliveries
        self.stats = ConsumerStats()
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._in_flight: Set[asyncio.Task] = set()
        self._runner: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._runner is not None and not self._runner.done()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def publish(self, data: Union[bytes, str]) -> QueueMessage:
        """Enqueue a payload (the producer side, used by the CLI and tests)."""
        message = QueueMessage(data=data)
        await self.queue.put(message)
        return message

    def start(self) -> None:
        if self.is_running:
            logger.info("Queue consumer already running.")
            return
        self._runner = asyncio.create_task(self._run(), name="llmsentinel-queue-consumer")
        logger.info(f"Queue consumer started (max concurrency {self.max_concurrency}).")

    async def _run(self) -> None:
        while True:
            await self._semaphore.acquire()
            try:
                message = await self.queue.get()
            except asyncio.CancelledError:
                self._semaphore.release()
                raise
            task = asyncio.create_task(self._process(message))
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)

    async def _process(self, message: QueueMessage) -> None:
        self.stats.delivered += 1
        try:
            await self.pipeline.handle_message(message)
        except Exception as e:
            # handle_message settles its own errors; anything here is a bug
            logger.error(f"Unhandled error processing message '{message.message_id}': {e}", exc_info=True)
            message.nack()
        finally:
            self._semaphore.release()
            try:
                await self._settle(message)
            finally:
                self.queue.task_done()

    async def _settle(self, message: QueueMessage) -> None:
        if message.acked:
            self.stats.acked += 1
            return
        self.stats.nacked += 1
        if message.attempts > self.max_redeliveries:
            self.stats.dead_lettered += 1
            logger.error(f"Dropping message '{message.message_id}' after {message.attempts} delivery attempts.")
            return
        self.stats.redelivered += 1
        await self.queue.put(message.redelivery())

    async def join(self) -> None:
        """Wait until every enqueued message (including redeliveries) is settled."""
        await self.queue.join()

    async def stop(self, drain_timeout: Optional[float] = 10.0) -> None:
        """
        Stop consuming.

        Waits up to ``drain_timeout`` seconds for the queue to drain, then
        stops pulling new messages and waits for in-flight messages to
        finish. Work still running after the timeout is cancelled; those
        messages are redelivered by the transport on the next run.
        """
        if drain_timeout:
            try:
                await asyncio.wait_for(self.queue.join(), timeout=drain_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Queue not drained after {drain_timeout}s; {self.queue.qsize()} messages left.")

        if self._runner is not None:
            self._runner.cancel()
            try:
                await self._runner
            except asyncio.CancelledError:
                pass
            self._runner = None

        if self._in_flight:
            done, pending = await asyncio.wait(set(self._in_flight), timeout=drain_timeout)
            for task in pending:
                task.cancel()
            if pending:
                logger.warning(f"Cancelled {len(pending)} in-flight messages at shutdown.")
                await asyncio.gather(*pending, return_exceptions=True)

        logger.info(f"Queue consumer stopped: {self.stats.model_dump()}")
