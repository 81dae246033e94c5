import asyncio
from typing import List, Optional
import logging

from ...common.config import WorkerSettings
from ...common.errors import (
    PipelineError, QueuePublishError, QueueReceiveError, UnexpectedError
)
from ...common.job_queue import JobQueue, ReceivedMessage
from ...common.models import (
    CycleOutcome, CycleResult, Disposition, Job, WorkerState
)
from ...common.object_store import ObjectStore
from .dead_letter_queue import DeadLetterQueue
from .image_processor import ImageProcessor
from .retry_handler import RetryHandler

logger = logging.getLogger(__name__)


class WorkerService:
    """Consumes thumbnail jobs one at a time and writes the derived images.

    Each call to :meth:`run_cycle` is independent and walks
    IDLE -> RECEIVED -> DECODED -> TRANSFORMED -> STORED -> DONE, stopping
    early on the first failure.
    """

    def __init__(
        self,
        settings: WorkerSettings,
        store: ObjectStore,
        queue: JobQueue,
        image_processor: Optional[ImageProcessor] = None,
        dead_letter_queue: Optional[DeadLetterQueue] = None,
    ):
        self.settings = settings
        self.store = store
        self.queue = queue
        self.image_processor = image_processor or ImageProcessor(
            width=settings.thumbnail_width,
            height=settings.thumbnail_height,
            output_format=settings.thumbnail_format,
            quality=settings.thumbnail_quality,
            resample=settings.resample_filter,
            upscale=settings.allow_upscale,
        )
        self.dead_letter_queue = dead_letter_queue
        self.retry_handler = RetryHandler(
            max_delivery_attempts=settings.max_delivery_attempts,
            dead_letter_enabled=dead_letter_queue is not None,
        )

    async def run_cycle(self) -> CycleResult:
        """
        Perform at most one consume-process-produce cycle

        Failures are logged and reported in the result, never raised.

        Returns:
            CycleResult describing the outcome and the last state reached
        """
        try:
            message = await self.queue.consume_one()
        except QueueReceiveError as e:
            logger.error(f"Error receiving message: {e.message}")
            return CycleResult(outcome=CycleOutcome.FAILED, state=WorkerState.IDLE, error=e)
        except Exception as e:
            logger.exception(f"Unexpected error receiving message: {str(e)}")
            return CycleResult(
                outcome=CycleOutcome.FAILED, state=WorkerState.IDLE, error=UnexpectedError(e)
            )

        if message is None:
            logger.info("No message received")
            return CycleResult(outcome=CycleOutcome.EMPTY, state=WorkerState.DONE)

        state = WorkerState.RECEIVED
        job: Optional[Job] = None
        error: Optional[PipelineError] = None
        try:
            job = Job.from_message(message.data)
            logger.info(f"Processing {job.container_name}/{job.object_name}")

            data = await self._read_source(job)
            img = await asyncio.to_thread(self.image_processor.decode, data)
            state = WorkerState.DECODED

            thumbnail = await asyncio.to_thread(self.image_processor.render, img)
            state = WorkerState.TRANSFORMED

            locator = await self.store.write(
                job.container_name,
                job.derived_object_name,
                thumbnail,
                self.settings.image_content_type,
            )
            state = WorkerState.STORED

        except PipelineError as e:
            error = e
        except Exception as e:
            logger.exception(f"Unexpected error processing message {message.message_id}: {str(e)}")
            error = UnexpectedError(e)

        if error is not None:
            disposition = await self._handle_failure(message, error, job)
            return CycleResult(
                outcome=CycleOutcome.FAILED,
                state=state,
                job=job,
                error=error,
                disposition=disposition,
            )

        try:
            await self.queue.acknowledge(message)
        except QueueReceiveError as e:
            # redelivery rewrites the same derived object
            logger.error(f"Error acknowledging message {message.message_id}: {e.message}")

        logger.info(f"Resized image uploaded to {locator}")
        return CycleResult(
            outcome=CycleOutcome.COMPLETED,
            state=WorkerState.DONE,
            job=job,
            derived_object_name=job.derived_object_name,
            locator=locator,
        )

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        """Run cycles until stop_event is set, pausing after empty cycles"""
        logger.info("Worker loop started")
        while not stop_event.is_set():
            result = await self.run_cycle()
            if result.outcome == CycleOutcome.EMPTY:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self.settings.poll_interval_seconds)
                except asyncio.TimeoutError:
                    pass
        logger.info("Worker loop stopped")

    async def _read_source(self, job: Job) -> bytes:
        chunks: List[bytes] = []
        async for chunk in self.store.read_stream(job.container_name, job.object_name):
            chunks.append(chunk)
        data = b"".join(chunks)
        logger.info(f"Read {len(data)} bytes of {job.object_name} in {len(chunks)} chunks")
        return data

    async def _handle_failure(
        self,
        message: ReceivedMessage,
        error: PipelineError,
        job: Optional[Job],
    ) -> Disposition:
        disposition = self.retry_handler.decide(message, error)

        if disposition == Disposition.RETRY:
            logger.warning(
                f"Cycle failed for message {message.message_id} "
                f"(attempt {message.delivery_attempt}), releasing for retry: {error.message}"
            )
            await self.queue.release(message)
            return disposition

        logger.error(f"Cycle failed for message {message.message_id}: {error.message}")

        if disposition == Disposition.DEAD_LETTER:
            try:
                await self.dead_letter_queue.add(
                    message, error, job, exhausted=self.retry_handler.is_exhausted(message)
                )
            except QueuePublishError as e:
                logger.error(f"Error dead-lettering message {message.message_id}: {e.message}")
                if not message.settled:
                    await self.queue.release(message)
                    return Disposition.RETRY
                logger.error(f"Job permanently lost: {message.data}")
                return Disposition.DROP
        else:
            logger.error(f"Job permanently lost: {message.data}")

        try:
            await self.queue.acknowledge(message)
        except QueueReceiveError as e:
            # the lease expires and the message comes back
            logger.error(f"Error acknowledging message {message.message_id}: {e.message}")
        return disposition
