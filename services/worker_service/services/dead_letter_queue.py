import json
from typing import Dict, Any, Optional, Protocol
from datetime import datetime, timezone
from dataclasses import dataclass, asdict
from enum import Enum
import logging

from ...common.errors import (
    DecodeError, DeserializationError, PipelineError, StoreReadError
)
from ...common.job_queue import ReceivedMessage
from ...common.models import Job

logger = logging.getLogger(__name__)


class DeadLetterReason(str, Enum):
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    MAX_RETRIES_EXCEEDED = "max_retries_exceeded"
    UNRECOVERABLE = "unrecoverable"


class MessagePublisher(Protocol):
    async def publish(self, payload: str) -> str: ...


@dataclass
class DeadLetterEntry:
    """A job that can no longer be processed"""
    payload: str
    reason: DeadLetterReason
    error_code: str
    error_message: str
    message_id: str
    delivery_attempt: int
    failed_at: datetime
    job: Optional[Dict[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        data = asdict(self)
        data['reason'] = self.reason.value
        data['failed_at'] = self.failed_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeadLetterEntry":
        """Create from dictionary"""
        data = dict(data)
        data['reason'] = DeadLetterReason(data['reason'])
        data['failed_at'] = datetime.fromisoformat(data['failed_at'])
        return cls(**data)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)


class DeadLetterQueue:
    """Publishes jobs that failed for good to a dead-letter topic"""

    def __init__(self, publisher: MessagePublisher):
        self.publisher = publisher

    @staticmethod
    def classify_reason(error: PipelineError, exhausted: bool = False) -> DeadLetterReason:
        """Classify the reason for dead-lettering"""
        if isinstance(error, (DeserializationError, DecodeError)):
            return DeadLetterReason.INVALID_INPUT
        if isinstance(error, StoreReadError) and error.not_found:
            return DeadLetterReason.NOT_FOUND
        if exhausted:
            return DeadLetterReason.MAX_RETRIES_EXCEEDED
        return DeadLetterReason.UNRECOVERABLE

    async def add(
        self,
        message: ReceivedMessage,
        error: PipelineError,
        job: Optional[Job] = None,
        exhausted: bool = False,
    ) -> DeadLetterEntry:
        """
        Record a failed message on the dead-letter topic

        Args:
            message: The consumed message
            error: The error that ended its cycle
            job: The deserialized job, when deserialization succeeded
            exhausted: Whether the delivery attempts ran out

        Returns:
            The published entry

        Raises:
            QueuePublishError: if the entry could not be published
        """
        entry = DeadLetterEntry(
            payload=message.data,
            reason=self.classify_reason(error, exhausted),
            error_code=error.code,
            error_message=error.message,
            message_id=message.message_id,
            delivery_attempt=message.delivery_attempt,
            failed_at=datetime.now(timezone.utc),
            job=job.model_dump(by_alias=True) if job else None,
        )

        await self.publisher.publish(entry.to_json())

        logger.warning(f"Added message {message.message_id} to dead letter queue: {entry.reason.value}")
        return entry
