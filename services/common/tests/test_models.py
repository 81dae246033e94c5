import json

import pytest

from services.common.errors import DeserializationError, PipelineError
from services.common.models import (
    CycleOutcome, CycleResult, ErrorInfo, Job, PartResult, PartStatus,
    UploadResponse, WorkerState, derived_name
)


class TestJob:
    """Test cases for the Job message"""

    def test_serializes_with_wire_field_names(self):
        job = Job.for_object("cat.png", "images")

        assert json.loads(job.to_message()) == {
            "filename": "cat.png",
            "image_container": "images",
        }

    def test_round_trip(self):
        job = Job.for_object("holiday photo (1).jpg", "images")

        restored = Job.from_message(job.to_message())

        assert restored == job
        assert restored.object_name == job.object_name
        assert restored.container_name == job.container_name

    def test_from_message_accepts_bytes(self):
        job = Job.from_message(b'{"filename": "cat.png", "image_container": "images"}')

        assert job.object_name == "cat.png"
        assert job.container_name == "images"

    def test_from_message_ignores_unknown_fields(self):
        job = Job.from_message('{"filename": "a.png", "image_container": "c", "extra": 1}')

        assert job.object_name == "a.png"

    @pytest.mark.parametrize("payload", [
        "not json",
        "[]",
        '{"filename": "cat.png"}',
        '{"image_container": "images"}',
        '{"filename": "", "image_container": "images"}',
        '{"filename": 42, "image_container": "images"}',
        '{"object_name": "cat.png", "container_name": "images"}',
    ])
    def test_malformed_payload_raises(self, payload):
        with pytest.raises(DeserializationError) as exc_info:
            Job.from_message(payload)

        assert exc_info.value.code == "DESERIALIZATION_ERROR"
        assert exc_info.value.payload == payload

    def test_derived_name(self):
        assert derived_name("cat.png") == "resized_cat.png"
        assert Job.for_object("cat.png", "images").derived_object_name == "resized_cat.png"


class TestResponses:
    """Test cases for ingress and worker result models"""

    def test_upload_response_counts(self):
        parts = [
            PartResult(name="a", filename="a.png", size_bytes=3, status=PartStatus.STORED),
            PartResult(name="b", status=PartStatus.SKIPPED),
            PartResult(
                name="c",
                size_bytes=3,
                status=PartStatus.FAILED,
                error=ErrorInfo(code="MISSING_FILENAME", message="no filename"),
            ),
        ]

        response = UploadResponse.from_parts(parts)

        assert (response.stored, response.skipped, response.failed) == (1, 1, 1)
        assert [p.name for p in response.parts] == ["a", "b", "c"]

    def test_error_info_from_error(self):
        info = ErrorInfo.from_error(PipelineError("boom", "SOME_CODE"))

        assert info.code == "SOME_CODE"
        assert info.message == "boom"

    def test_cycle_result_succeeded(self):
        assert CycleResult(outcome=CycleOutcome.EMPTY, state=WorkerState.DONE).succeeded
        assert not CycleResult(outcome=CycleOutcome.FAILED, state=WorkerState.RECEIVED).succeeded
