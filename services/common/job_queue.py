import asyncio
from concurrent import futures
from dataclasses import dataclass
from typing import Optional, Protocol
import logging

from google.api_core import exceptions as gcloud_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import pubsub_v1

from .errors import ConfigurationMissing, QueuePublishError, QueueReceiveError

logger = logging.getLogger(__name__)


@dataclass
class ReceivedMessage:
    """A message taken from the queue.

    ``settled`` is True once the message has been removed from the queue,
    either by a destructive receive or by an explicit acknowledge/release.
    """
    data: str
    message_id: str
    ack_id: Optional[str] = None
    delivery_attempt: int = 0
    settled: bool = False


class JobQueue(Protocol):
    """Capability to publish and consume job messages"""

    async def publish(self, payload: str) -> str: ...

    async def consume_one(self) -> Optional[ReceivedMessage]: ...

    async def acknowledge(self, message: ReceivedMessage) -> None: ...

    async def release(self, message: ReceivedMessage) -> None: ...


class PubSubPublisher:
    """Publishes messages to a Google Cloud Pub/Sub topic"""

    def __init__(
        self,
        project_id: str,
        topic: str,
        timeout_seconds: float = 30.0,
        client: Optional[pubsub_v1.PublisherClient] = None,
    ):
        if client is None:
            try:
                client = pubsub_v1.PublisherClient()
            except auth_exceptions.DefaultCredentialsError as e:
                raise ConfigurationMissing(
                    ["GOOGLE_APPLICATION_CREDENTIALS"],
                    f"Pub/Sub credentials unavailable: {str(e)}",
                ) from e
        self.client = client
        self.topic_path = client.topic_path(project_id, topic)
        self.timeout_seconds = timeout_seconds

    async def publish(self, payload: str) -> str:
        """Publish a message and wait for the broker to accept it; returns the message id"""
        try:
            future = self.client.publish(self.topic_path, data=payload.encode("utf-8"))
            message_id = await asyncio.to_thread(future.result, timeout=self.timeout_seconds)
        except (
            gcloud_exceptions.GoogleAPIError,
            auth_exceptions.GoogleAuthError,
            futures.TimeoutError,
            OSError,
        ) as e:
            logger.error(f"Error publishing to {self.topic_path}: {str(e)}")
            raise QueuePublishError(str(e), {"topic": self.topic_path}) from e

        logger.info(f"Message {message_id} sent to {self.topic_path}")
        return message_id


class PubSubJobQueue:
    """Job queue backed by a Pub/Sub pull subscription (and optionally its topic).

    With ``destructive=True`` a pulled message is acknowledged before it is
    handed to the caller, so it is never redelivered (receive-and-delete).
    Otherwise the message stays leased until :meth:`acknowledge` or
    :meth:`release` is called, or until the subscription's ack deadline
    expires.
    """

    def __init__(
        self,
        project_id: str,
        subscription: str,
        topic: Optional[str] = None,
        destructive: bool = True,
        pull_timeout_seconds: float = 10.0,
        publish_timeout_seconds: float = 30.0,
        publisher: Optional[pubsub_v1.PublisherClient] = None,
        subscriber: Optional[pubsub_v1.SubscriberClient] = None,
    ):
        self.publisher: Optional[PubSubPublisher] = None
        if topic:
            self.publisher = PubSubPublisher(
                project_id, topic, publish_timeout_seconds, client=publisher
            )
        if subscriber is None:
            try:
                subscriber = pubsub_v1.SubscriberClient()
            except auth_exceptions.DefaultCredentialsError as e:
                raise ConfigurationMissing(
                    ["GOOGLE_APPLICATION_CREDENTIALS"],
                    f"Pub/Sub credentials unavailable: {str(e)}",
                ) from e
        self.subscriber = subscriber
        self.subscription_path = subscriber.subscription_path(project_id, subscription)
        self.destructive = destructive
        self.pull_timeout_seconds = pull_timeout_seconds

    async def publish(self, payload: str) -> str:
        if self.publisher is None:
            raise QueuePublishError("no topic configured", {"subscription": self.subscription_path})
        return await self.publisher.publish(payload)

    async def consume_one(self) -> Optional[ReceivedMessage]:
        """Pull at most one message; None when the subscription is empty"""
        try:
            response = await asyncio.to_thread(
                self.subscriber.pull,
                request={"subscription": self.subscription_path, "max_messages": 1},
                timeout=self.pull_timeout_seconds,
            )
        except gcloud_exceptions.DeadlineExceeded:
            return None
        except (gcloud_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError, OSError) as e:
            logger.error(f"Error pulling from {self.subscription_path}: {str(e)}")
            raise QueueReceiveError(str(e), {"subscription": self.subscription_path}) from e

        if not response.received_messages:
            return None

        received = response.received_messages[0]
        message = ReceivedMessage(
            data=received.message.data.decode("utf-8", errors="replace"),
            message_id=received.message.message_id,
            ack_id=received.ack_id,
            delivery_attempt=received.delivery_attempt,
        )
        logger.info(f"Received message {message.message_id} (attempt {message.delivery_attempt})")

        if self.destructive:
            await self._acknowledge(message)
        return message

    async def acknowledge(self, message: ReceivedMessage) -> None:
        if message.settled:
            return
        await self._acknowledge(message)

    async def release(self, message: ReceivedMessage) -> None:
        """Make a leased message visible again for redelivery"""
        if message.settled:
            return
        try:
            await asyncio.to_thread(
                self.subscriber.modify_ack_deadline,
                request={
                    "subscription": self.subscription_path,
                    "ack_ids": [message.ack_id],
                    "ack_deadline_seconds": 0,
                },
            )
        except (gcloud_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError, OSError) as e:
            # the lease still expires on its own
            logger.warning(f"Error releasing message {message.message_id}: {str(e)}")
            return
        message.settled = True
        logger.info(f"Released message {message.message_id} for redelivery")

    async def _acknowledge(self, message: ReceivedMessage) -> None:
        try:
            await asyncio.to_thread(
                self.subscriber.acknowledge,
                request={"subscription": self.subscription_path, "ack_ids": [message.ack_id]},
            )
        except (gcloud_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError, OSError) as e:
            logger.error(f"Error acknowledging message {message.message_id}: {str(e)}")
            raise QueueReceiveError(str(e), {"message_id": message.message_id}) from e
        message.settled = True
