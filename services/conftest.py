import io
from collections import deque
from typing import AsyncIterator, Deque, Dict, List, Optional, Tuple

import pytest
from PIL import Image

from services.common.config import IngressSettings, WorkerSettings
from services.common.errors import (
    QueuePublishError, QueueReceiveError, StoreReadError, StoreWriteError
)
from services.common.job_queue import ReceivedMessage


class InMemoryObjectStore:
    """Object store fake keeping objects in a dict and recording every call"""

    def __init__(self, chunk_size: int = 0x2000, events: Optional[List[Tuple[str, ...]]] = None):
        self.chunk_size = chunk_size
        self.objects: Dict[Tuple[str, str], Dict] = {}
        self.events = events if events is not None else []
        self.fail_writes: Dict[str, Exception] = {}
        self.fail_reads: Dict[str, Exception] = {}

    def put(self, container: str, name: str, data: bytes, content_type: str = "image/jpeg") -> None:
        self.objects[(container, name)] = {
            "data": data, "content_type": content_type, "metadata": {}
        }

    async def write(self, container, name, data, content_type, metadata=None) -> str:
        self.events.append(("write", container, name))
        if name in self.fail_writes:
            raise StoreWriteError(container, name, str(self.fail_writes[name]))
        self.objects[(container, name)] = {
            "data": bytes(data),
            "content_type": content_type,
            "metadata": dict(metadata or {}),
        }
        return self.locator(container, name)

    async def read_stream(self, container, name) -> AsyncIterator[bytes]:
        self.events.append(("read", container, name))
        if name in self.fail_reads:
            raise StoreReadError(container, name, str(self.fail_reads[name]))
        stored = self.objects.get((container, name))
        if stored is None:
            raise StoreReadError(container, name, "object does not exist", not_found=True)
        data = stored["data"]
        for offset in range(0, len(data), self.chunk_size):
            yield data[offset:offset + self.chunk_size]

    def locator(self, container, name) -> str:
        return f"memory://{container}/{name}"


class InMemoryJobQueue:
    """Job queue fake supporting destructive and leased consumption"""

    def __init__(self, destructive: bool = True, events: Optional[List[Tuple[str, ...]]] = None):
        self.destructive = destructive
        self.pending: Deque[Tuple[str, str, int]] = deque()
        self.published: List[str] = []
        self.acknowledged: List[str] = []
        self.released: List[str] = []
        self.events = events if events is not None else []
        self.fail_publish: Optional[Exception] = None
        self.fail_receive: Optional[Exception] = None
        self._counter = 0
        self._attempts: Dict[str, int] = {}

    async def publish(self, payload: str) -> str:
        self.events.append(("publish", payload))
        if self.fail_publish is not None:
            raise QueuePublishError(str(self.fail_publish))
        self._counter += 1
        message_id = f"msg-{self._counter}"
        self.published.append(payload)
        self.pending.append((message_id, payload, 0))
        return message_id

    async def consume_one(self) -> Optional[ReceivedMessage]:
        self.events.append(("consume",))
        if self.fail_receive is not None:
            raise QueueReceiveError(str(self.fail_receive))
        if not self.pending:
            return None
        message_id, payload, attempts = self.pending.popleft()
        message = ReceivedMessage(
            data=payload,
            message_id=message_id,
            ack_id=f"ack-{message_id}",
            delivery_attempt=attempts + 1,
        )
        self._attempts[message_id] = attempts + 1
        if self.destructive:
            message.settled = True
        return message

    async def acknowledge(self, message: ReceivedMessage) -> None:
        if message.settled:
            return
        self.acknowledged.append(message.message_id)
        message.settled = True

    async def release(self, message: ReceivedMessage) -> None:
        if message.settled:
            return
        self.released.append(message.message_id)
        self.pending.append((message.message_id, message.data, self._attempts[message.message_id]))
        message.settled = True


def make_image_bytes(size=(800, 600), fmt="PNG", mode="RGB", color="blue") -> bytes:
    img = Image.new(mode, size, color=color)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def events():
    return []


@pytest.fixture
def memory_store(events):
    return InMemoryObjectStore(events=events)


@pytest.fixture
def memory_queue(events):
    return InMemoryJobQueue(events=events)


@pytest.fixture
def ingress_settings():
    """Create ingress test settings"""
    return IngressSettings(
        _env_file=None,
        environment="testing",
        google_cloud_project="test-project",
        storage_container="images",
        pubsub_topic="thumbnail-jobs",
    )


@pytest.fixture
def worker_settings():
    """Create worker test settings"""
    return WorkerSettings(
        _env_file=None,
        environment="testing",
        google_cloud_project="test-project",
        storage_container="images",
        pubsub_subscription="thumbnail-jobs-sub",
    )


@pytest.fixture
def sample_png():
    """An 800x600 PNG image"""
    return make_image_bytes((800, 600), "PNG")


@pytest.fixture
def small_png():
    """A 40x20 PNG image"""
    return make_image_bytes((40, 20), "PNG", color="red")


@pytest.fixture
def make_image():
    """Factory for encoded test images"""
    return make_image_bytes


@pytest.fixture
def queue_factory(events):
    """Factory for additional in-memory queues sharing the event log"""
    def factory(destructive: bool = True, shared_events: bool = True) -> InMemoryJobQueue:
        return InMemoryJobQueue(destructive=destructive, events=events if shared_events else None)
    return factory
