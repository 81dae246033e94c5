import asyncio
from typing import List, Sequence
import logging

from ...common.config import IngressSettings
from ...common.errors import (
    MissingFilename, PayloadTooLarge, PipelineError, QueuePublishError, UnexpectedError
)
from ...common.job_queue import JobQueue
from ...common.models import (
    ErrorInfo, Job, PartResult, PartStatus, UploadPart, UploadResponse
)
from ...common.object_store import ObjectStore

logger = logging.getLogger(__name__)

JOB_METADATA_KEY = "thumbnail_job"


class IngressService:
    """Stores uploaded images and announces them to the worker queue"""

    def __init__(self, settings: IngressSettings, store: ObjectStore, queue: JobQueue):
        self.settings = settings
        self.store = store
        self.queue = queue

    @property
    def container(self) -> str:
        return self.settings.storage_container

    @property
    def max_upload_bytes(self) -> int:
        return self.settings.max_upload_bytes

    def check_size(self, size_bytes: int) -> None:
        """Raise PayloadTooLarge when size_bytes is over the upload ceiling"""
        if size_bytes > self.max_upload_bytes:
            raise PayloadTooLarge(size_bytes, self.max_upload_bytes)

    async def handle_upload(self, parts: Sequence[UploadPart]) -> UploadResponse:
        """
        Store every non-empty part and publish one job per stored object

        Parts are independent: they run concurrently and a failure in one
        part is reported in its result without affecting the others.

        Args:
            parts: Uploaded parts in request order

        Returns:
            UploadResponse with one result per part, in request order

        Raises:
            PayloadTooLarge: if the aggregate payload is over the ceiling;
                raised before any part is processed
        """
        self.check_size(sum(len(part.data) for part in parts))

        results: List[PartResult] = await asyncio.gather(
            *(self._process_part(part) for part in parts)
        )
        response = UploadResponse.from_parts(results)

        logger.info(
            f"Upload handled: {response.stored} stored, "
            f"{response.skipped} skipped, {response.failed} failed"
        )
        return response

    async def _process_part(self, part: UploadPart) -> PartResult:
        if not part.data:
            logger.debug(f"Skipping empty part {part.name}")
            return PartResult(name=part.name, filename=part.filename, status=PartStatus.SKIPPED)

        result = PartResult(
            name=part.name,
            filename=part.filename,
            size_bytes=len(part.data),
            status=PartStatus.FAILED,
        )

        try:
            if not part.filename:
                raise MissingFilename(part.name)

            job = Job.for_object(part.filename, self.container)
            message = job.to_message()

            # The publish must never start before the write is acknowledged
            result.locator = await self.store.write(
                job.container_name,
                job.object_name,
                part.data,
                self.settings.image_content_type,
                metadata={JOB_METADATA_KEY: message},
            )
            result.object_name = job.object_name

            result.message_id = await self.queue.publish(message)
            result.status = PartStatus.STORED

        except QueuePublishError as e:
            logger.warning(
                f"Object {self.container}/{part.filename} is orphaned, "
                f"job was not published: {e.message}"
            )
            result.error = ErrorInfo.from_error(e)
        except PipelineError as e:
            logger.error(f"Failed to process part {part.name}: {e.message}")
            result.error = ErrorInfo.from_error(e)
        except Exception as e:
            logger.exception(f"Unexpected error processing part {part.name}: {str(e)}")
            result.error = ErrorInfo.from_error(UnexpectedError(e))

        return result
