"""
Pipeline exceptions
"""

from typing import Optional, Dict, Any, List


class PipelineError(Exception):
    """Base exception for the thumbnail pipeline."""

    http_status: int = 500

    def __init__(
        self,
        message: str,
        code: str = "PIPELINE_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


class ConfigurationMissing(PipelineError):
    """Raised at startup when required configuration is absent or invalid."""

    def __init__(self, fields: List[str], message: Optional[str] = None):
        msg = message or f"Missing or invalid configuration: {', '.join(fields)}"
        super().__init__(msg, "CONFIGURATION_MISSING", {"fields": fields})
        self.fields = fields


class PayloadTooLarge(PipelineError):
    """Raised when an upload exceeds the configured size ceiling."""

    http_status = 413

    def __init__(self, size_bytes: int, max_bytes: int):
        super().__init__(
            f"Payload of {size_bytes} bytes exceeds the limit of {max_bytes} bytes",
            "PAYLOAD_TOO_LARGE",
            {"size_bytes": size_bytes, "max_bytes": max_bytes},
        )
        self.size_bytes = size_bytes
        self.max_bytes = max_bytes


class MissingFilename(PipelineError):
    """Raised when an uploaded part carries data but no filename."""

    http_status = 400

    def __init__(self, part_name: str):
        super().__init__(
            f"Part '{part_name}' has no filename",
            "MISSING_FILENAME",
            {"part_name": part_name},
        )
        self.part_name = part_name


class StoreWriteError(PipelineError):
    """Raised when an object could not be written to the object store."""

    def __init__(self, container: str, name: str, reason: str):
        super().__init__(
            f"Failed to write {container}/{name}: {reason}",
            "STORE_WRITE_ERROR",
            {"container": container, "name": name},
        )
        self.container = container
        self.name = name


class StoreReadError(PipelineError):
    """Raised when an object could not be read from the object store."""

    def __init__(self, container: str, name: str, reason: str, not_found: bool = False):
        super().__init__(
            f"Failed to read {container}/{name}: {reason}",
            "OBJECT_NOT_FOUND" if not_found else "STORE_READ_ERROR",
            {"container": container, "name": name},
        )
        self.container = container
        self.name = name
        self.not_found = not_found


class QueuePublishError(PipelineError):
    """Raised when a job message could not be published."""

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Failed to publish message: {reason}", "QUEUE_PUBLISH_ERROR", details)


class QueueReceiveError(PipelineError):
    """Raised when the queue could not be polled for a message."""

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Failed to receive message: {reason}", "QUEUE_RECEIVE_ERROR", details)


class DeserializationError(PipelineError):
    """Raised when a message payload is not a valid job."""

    def __init__(self, reason: str, payload: Optional[str] = None):
        super().__init__(
            f"Malformed job message: {reason}",
            "DESERIALIZATION_ERROR",
            {"payload": payload} if payload is not None else None,
        )
        self.payload = payload


class DecodeError(PipelineError):
    """Raised when image data is corrupt or in an unsupported format."""

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Failed to decode image: {reason}", "DECODE_ERROR", details)


class UnexpectedError(PipelineError):
    """Raised in place of an exception no client boundary translated."""

    def __init__(self, error: Exception):
        super().__init__(
            f"Unexpected {type(error).__name__}: {str(error)}",
            "UNEXPECTED_ERROR",
            {"type": type(error).__name__},
        )
