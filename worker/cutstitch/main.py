"""
CutStitch Worker Entry Point

Starts the RQ worker that processes render jobs.

Usage:
    python -m cutstitch.main

Environment Variables:
    REDIS_URL: Redis connection URL (default: redis://localhost:6379/0)
"""

import logging
import sys

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue, Worker

from .queues import ALL_QUEUES, get_redis_connection
from .tasks.ffmpeg_runner import validate_ffmpeg_available
from .config import get_settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger("cutstitch.worker")


def create_worker(connection: Redis) -> Worker:
    """
    Create an RQ worker that listens to the render queue.

    Args:
        connection: Redis connection instance

    Returns:
        Worker: Configured RQ worker instance
    """
    queues = [Queue(name, connection=connection) for name in ALL_QUEUES]

    return Worker(
        queues=queues,
        connection=connection,
        name="cutstitch-worker",
    )


def start_worker() -> None:
    """
    Initialize Redis connection and start the RQ worker.

    This function blocks and runs until the worker is terminated.
    """
    logger.info("Starting CutStitch worker...")

    if not validate_ffmpeg_available(get_settings().ffmpeg_path):
        logger.error("ffmpeg is not available; refusing to start")
        sys.exit(1)

    try:
        connection = get_redis_connection()
        connection.ping()
        logger.info("Successfully connected to Redis")
    except RedisError as e:
        logger.error(f"Failed to connect to Redis: {e}")
        sys.exit(1)

    logger.info(f"Listening on queues: {', '.join(ALL_QUEUES)}")

    worker = create_worker(connection)

    try:
        worker.work(with_scheduler=False)
    except KeyboardInterrupt:
        logger.info("Worker shutdown requested")

    logger.info("Worker stopped")


def main() -> None:
    """Main entry point for the worker module."""
    start_worker()


if __name__ == "__main__":
    main()
