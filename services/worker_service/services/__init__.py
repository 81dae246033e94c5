"""
Worker service modules for thumbnail generation
"""

from .worker import WorkerService
from .image_processor import ImageProcessor
from .retry_handler import RetryHandler
from .dead_letter_queue import DeadLetterQueue

__all__ = [
    'WorkerService',
    'ImageProcessor',
    'RetryHandler',
    'DeadLetterQueue',
]
