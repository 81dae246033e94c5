"""
Shared modules for the ingress and worker services
"""

from .errors import (
    PipelineError,
    ConfigurationMissing,
    PayloadTooLarge,
    MissingFilename,
    StoreWriteError,
    StoreReadError,
    QueuePublishError,
    QueueReceiveError,
    DeserializationError,
    DecodeError,
    UnexpectedError,
)
from .models import Job, derived_name

__all__ = [
    'PipelineError',
    'ConfigurationMissing',
    'PayloadTooLarge',
    'MissingFilename',
    'StoreWriteError',
    'StoreReadError',
    'QueuePublishError',
    'QueueReceiveError',
    'DeserializationError',
    'DecodeError',
    'UnexpectedError',
    'Job',
    'derived_name',
]
