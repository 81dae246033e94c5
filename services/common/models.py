from pydantic import BaseModel, ConfigDict, Field, ValidationError
from typing import List, Optional, Union
from dataclasses import dataclass
from enum import Enum

from .errors import DeserializationError, PipelineError

DERIVED_PREFIX = "resized_"


def derived_name(object_name: str) -> str:
    """Name of the thumbnail produced from a source object"""
    return f"{DERIVED_PREFIX}{object_name}"


class Job(BaseModel):
    """Announcement that a stored object is ready for thumbnail generation.

    On the wire the fields are named ``filename`` and ``image_container``.
    """

    object_name: str = Field(..., alias="filename", min_length=1)
    container_name: str = Field(..., alias="image_container", min_length=1)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def for_object(cls, object_name: str, container_name: str) -> "Job":
        return cls(filename=object_name, image_container=container_name)

    @property
    def derived_object_name(self) -> str:
        return derived_name(self.object_name)

    def to_message(self) -> str:
        """Serialize to the JSON message body"""
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_message(cls, payload: Union[str, bytes]) -> "Job":
        """Deserialize a JSON message body, raising DeserializationError"""
        try:
            return cls.model_validate_json(payload)
        except ValidationError as e:
            if isinstance(payload, bytes):
                payload = payload.decode("utf-8", errors="replace")
            raise DeserializationError(str(e.errors()[0].get("msg", e)), payload) from e


@dataclass(frozen=True)
class UploadPart:
    """One part of a multipart upload"""
    name: str
    filename: Optional[str]
    data: bytes


class PartStatus(str, Enum):
    STORED = "stored"
    SKIPPED = "skipped"
    FAILED = "failed"


class ErrorInfo(BaseModel):
    code: str
    message: str

    @classmethod
    def from_error(cls, error: PipelineError) -> "ErrorInfo":
        return cls(code=error.code, message=error.message)


class PartResult(BaseModel):
    name: str
    filename: Optional[str] = None
    size_bytes: int = 0
    status: PartStatus
    object_name: Optional[str] = None
    locator: Optional[str] = None
    message_id: Optional[str] = None
    error: Optional[ErrorInfo] = None


class UploadResponse(BaseModel):
    parts: List[PartResult] = Field(default_factory=list)
    stored: int = 0
    skipped: int = 0
    failed: int = 0

    @classmethod
    def from_parts(cls, parts: List[PartResult]) -> "UploadResponse":
        return cls(
            parts=parts,
            stored=len([p for p in parts if p.status == PartStatus.STORED]),
            skipped=len([p for p in parts if p.status == PartStatus.SKIPPED]),
            failed=len([p for p in parts if p.status == PartStatus.FAILED]),
        )


class ErrorResponse(BaseModel):
    error: str
    message: str


class WorkerState(str, Enum):
    IDLE = "idle"
    RECEIVED = "received"
    DECODED = "decoded"
    TRANSFORMED = "transformed"
    STORED = "stored"
    DONE = "done"


class CycleOutcome(str, Enum):
    EMPTY = "empty"
    COMPLETED = "completed"
    FAILED = "failed"


class Disposition(str, Enum):
    RETRY = "retry"
    DEAD_LETTER = "dead_letter"
    DROP = "drop"


@dataclass
class CycleResult:
    """Outcome of a single worker cycle"""
    outcome: CycleOutcome
    state: WorkerState
    job: Optional[Job] = None
    derived_object_name: Optional[str] = None
    locator: Optional[str] = None
    error: Optional[PipelineError] = None
    disposition: Optional[Disposition] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome != CycleOutcome.FAILED
