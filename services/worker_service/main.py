import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from ..common.config import ReceiveMode, WorkerSettings, load_settings
from ..common.errors import ConfigurationMissing
from ..common.job_queue import PubSubJobQueue, PubSubPublisher
from ..common.object_store import GCSObjectStore
from .services.dead_letter_queue import DeadLetterQueue
from .services.worker import WorkerService

logger = logging.getLogger(__name__)


def build_worker_service(settings: WorkerSettings) -> WorkerService:
    store = GCSObjectStore(settings.google_cloud_project, chunk_size=settings.read_chunk_size)
    queue = PubSubJobQueue(
        settings.google_cloud_project,
        settings.pubsub_subscription,
        destructive=settings.receive_mode == ReceiveMode.DESTRUCTIVE,
        pull_timeout_seconds=settings.pull_timeout_seconds,
    )

    dead_letter_queue = None
    if settings.dead_letter_topic:
        dead_letter_queue = DeadLetterQueue(
            PubSubPublisher(settings.google_cloud_project, settings.dead_letter_topic)
        )

    return WorkerService(settings, store, queue, dead_letter_queue=dead_letter_queue)


async def run_loop(worker: WorkerService) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)
    await worker.run_forever(stop_event)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Thumbnail worker")
    parser.add_argument(
        "--loop",
        action="store_true",
        help="keep consuming jobs until interrupted instead of running a single cycle",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the worker process"""
    args = parse_args(argv)

    try:
        settings = load_settings(WorkerSettings)
    except ConfigurationMissing as e:
        logging.basicConfig(level=logging.INFO)
        logger.critical(e.message)
        return 1

    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))

    try:
        worker = build_worker_service(settings)
    except ConfigurationMissing as e:
        logger.critical(e.message)
        return 1

    if args.loop:
        asyncio.run(run_loop(worker))
    else:
        result = asyncio.run(worker.run_cycle())
        logger.info(f"Cycle finished: {result.outcome.value} at state {result.state.value}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
