import pytest
from pydantic import ValidationError

from services.common.config import (
    IngressSettings, ReceiveMode, WorkerSettings, load_settings
)
from services.common.errors import ConfigurationMissing

REQUIRED_ENV = [
    "GOOGLE_CLOUD_PROJECT",
    "STORAGE_CONTAINER",
    "PUBSUB_TOPIC",
    "PUBSUB_SUBSCRIPTION",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in REQUIRED_ENV:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSettings:
    """Test cases for configuration loading"""

    def test_worker_defaults(self, worker_settings):
        assert worker_settings.thumbnail_width == 100
        assert worker_settings.thumbnail_height == 100
        assert worker_settings.thumbnail_format == "JPEG"
        assert worker_settings.read_chunk_size == 8192
        assert worker_settings.receive_mode == ReceiveMode.DESTRUCTIVE
        assert worker_settings.dead_letter_topic is None
        assert worker_settings.image_content_type == "image/jpeg"

    def test_ingress_defaults(self, ingress_settings):
        assert ingress_settings.max_upload_bytes == 5 * 1024 * 1024
        assert ingress_settings.storage_container == "images"

    def test_reads_environment(self, clean_env):
        clean_env.setenv("GOOGLE_CLOUD_PROJECT", "env-project")
        clean_env.setenv("STORAGE_CONTAINER", "env-images")
        clean_env.setenv("PUBSUB_SUBSCRIPTION", "env-sub")
        clean_env.setenv("RECEIVE_MODE", "lease")
        clean_env.setenv("THUMBNAIL_WIDTH", "64")

        settings = load_settings(WorkerSettings, _env_file=None)

        assert settings.google_cloud_project == "env-project"
        assert settings.storage_container == "env-images"
        assert settings.receive_mode == ReceiveMode.LEASE
        assert settings.thumbnail_width == 64

    def test_missing_required_values(self, clean_env):
        clean_env.setenv("GOOGLE_CLOUD_PROJECT", "env-project")

        with pytest.raises(ConfigurationMissing) as exc_info:
            load_settings(IngressSettings, _env_file=None)

        assert "storage_container" in exc_info.value.fields
        assert "pubsub_topic" in exc_info.value.fields
        assert exc_info.value.code == "CONFIGURATION_MISSING"

    def test_empty_container_is_rejected(self, clean_env):
        with pytest.raises(ConfigurationMissing):
            load_settings(
                IngressSettings,
                _env_file=None,
                google_cloud_project="p",
                storage_container="",
                pubsub_topic="t",
            )

    def test_unknown_resample_filter_is_rejected(self, clean_env):
        with pytest.raises(ConfigurationMissing) as exc_info:
            load_settings(
                WorkerSettings,
                _env_file=None,
                google_cloud_project="p",
                storage_container="c",
                pubsub_subscription="s",
                resample_filter="sinc",
            )

        assert exc_info.value.fields == ["resample_filter"]

    def test_settings_are_immutable(self, worker_settings):
        with pytest.raises(ValidationError):
            worker_settings.thumbnail_width = 10
