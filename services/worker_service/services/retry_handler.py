from enum import Enum
import logging

from ...common.errors import (
    DecodeError, DeserializationError, PipelineError, StoreReadError, StoreWriteError,
    UnexpectedError,
)
from ...common.job_queue import ReceivedMessage
from ...common.models import Disposition

logger = logging.getLogger(__name__)


class FailureType(str, Enum):
    TRANSIENT = "transient"  # Network or service failures worth another attempt
    PERMANENT = "permanent"  # Bad input that will fail the same way again


class RetryHandler:
    """Decides what happens to a consumed message whose cycle failed"""

    def __init__(self, max_delivery_attempts: int = 5, dead_letter_enabled: bool = False):
        self.max_delivery_attempts = max_delivery_attempts
        self.dead_letter_enabled = dead_letter_enabled

    def classify_failure(self, error: PipelineError) -> FailureType:
        """Classify a cycle failure as transient or permanent"""
        if isinstance(error, (DeserializationError, DecodeError)):
            return FailureType.PERMANENT
        if isinstance(error, StoreReadError):
            return FailureType.PERMANENT if error.not_found else FailureType.TRANSIENT
        if isinstance(error, (StoreWriteError, UnexpectedError)):
            return FailureType.TRANSIENT
        return FailureType.PERMANENT

    def decide(self, message: ReceivedMessage, error: PipelineError) -> Disposition:
        """
        Pick the disposition of a failed message

        A settled message (destructive receive) can no longer be retried.
        A leased message is released for redelivery while the failure is
        transient and attempts remain; a delivery attempt of 0 means the
        queue does not count attempts.

        Returns:
            RETRY, DEAD_LETTER or DROP
        """
        terminal = Disposition.DEAD_LETTER if self.dead_letter_enabled else Disposition.DROP

        if message.settled:
            return terminal

        if self.classify_failure(error) == FailureType.PERMANENT:
            logger.info(f"Message {message.message_id} failed permanently: {error.code}")
            return terminal

        if self.is_exhausted(message):
            logger.info(
                f"Message {message.message_id} exceeded max delivery attempts "
                f"({self.max_delivery_attempts})"
            )
            return terminal

        return Disposition.RETRY

    def is_exhausted(self, message: ReceivedMessage) -> bool:
        attempt = message.delivery_attempt
        return bool(attempt) and attempt >= self.max_delivery_attempts
