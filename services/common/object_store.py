import asyncio
from typing import AsyncIterator, Dict, Optional, Protocol
import logging

from google.api_core import exceptions as gcloud_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import storage

from .errors import ConfigurationMissing, StoreReadError, StoreWriteError

logger = logging.getLogger(__name__)


class ObjectStore(Protocol):
    """Capability to write, stream and address named objects"""

    async def write(
        self,
        container: str,
        name: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str: ...

    def read_stream(self, container: str, name: str) -> AsyncIterator[bytes]: ...

    def locator(self, container: str, name: str) -> str: ...


class GCSObjectStore:
    """Google Cloud Storage backed object store.

    The storage client is synchronous; every network call is pushed onto a
    worker thread so the event loop keeps serving other requests.
    """

    def __init__(
        self,
        project_id: str,
        chunk_size: int = 0x2000,
        client: Optional[storage.Client] = None,
    ):
        self.project_id = project_id
        self.chunk_size = chunk_size
        if client is None:
            try:
                client = storage.Client(project=project_id)
            except auth_exceptions.DefaultCredentialsError as e:
                raise ConfigurationMissing(
                    ["GOOGLE_APPLICATION_CREDENTIALS"],
                    f"Storage credentials unavailable: {str(e)}",
                ) from e
        self.client = client

    def _blob(self, container: str, name: str) -> storage.Blob:
        return self.client.bucket(container).blob(name)

    async def write(
        self,
        container: str,
        name: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        """
        Upload an object and wait for the store to acknowledge it

        Args:
            container: Bucket name
            name: Object name
            data: Object payload
            content_type: MIME type recorded on the object
            metadata: Optional custom metadata

        Returns:
            Locator of the written object
        """
        blob = self._blob(container, name)
        if metadata:
            blob.metadata = metadata
        try:
            await asyncio.to_thread(blob.upload_from_string, data, content_type=content_type)
        except (gcloud_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError, OSError) as e:
            logger.error(f"Error uploading {container}/{name}: {str(e)}")
            raise StoreWriteError(container, name, str(e)) from e

        locator = blob.public_url
        logger.info(f"Uploaded {len(data)} bytes to {locator}")
        return locator

    async def read_stream(self, container: str, name: str) -> AsyncIterator[bytes]:
        """Stream an object as ranged downloads of at most chunk_size bytes"""
        blob = self._blob(container, name)
        try:
            await asyncio.to_thread(blob.reload)
        except gcloud_exceptions.NotFound as e:
            raise StoreReadError(container, name, "object does not exist", not_found=True) from e
        except (gcloud_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError, OSError) as e:
            raise StoreReadError(container, name, str(e)) from e

        size = blob.size or 0
        offset = 0
        while offset < size:
            # end is inclusive
            end = min(offset + self.chunk_size, size) - 1
            try:
                chunk = await asyncio.to_thread(blob.download_as_bytes, start=offset, end=end)
            except gcloud_exceptions.NotFound as e:
                raise StoreReadError(container, name, "object was removed while reading", not_found=True) from e
            except (gcloud_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError, OSError) as e:
                raise StoreReadError(container, name, str(e)) from e
            if not chunk:
                raise StoreReadError(container, name, f"empty chunk at offset {offset} of {size}")

            logger.debug(f"Received {len(chunk)} bytes of {container}/{name}")
            offset += len(chunk)
            yield chunk

    def locator(self, container: str, name: str) -> str:
        return self._blob(container, name).public_url
