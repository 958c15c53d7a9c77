# worker/worker.py
"""
Upload-finished worker: pops events pushed by the upload transport, pins
the file to IPFS and queues the encoding job.

    python -m worker.worker
"""
import logging
import signal
import threading
import time

import redis
from pydantic import ValidationError

from embedvideo.config import get_settings
from embedvideo.db import SessionLocal
from embedvideo.errors import EmbedVideoError
from embedvideo.pipeline import UploadFinished, handle_upload_finished
from embedvideo.utils.redis_utils import QUEUE_NAME, redis_client

logger = logging.getLogger("worker")

stop_event = threading.Event()


def _request_stop(signum, frame):
    logger.info("Signal %s received, finishing current upload then exiting", signum)
    stop_event.set()


def handle_message(payload: str, session_factory=SessionLocal) -> bool:
    """Process one raw queue message. Returns True when the job was created."""
    try:
        event = UploadFinished.model_validate_json(payload)
    except ValidationError as e:
        logger.error("Dropping malformed upload event %r: %s", payload[:200], e)
        return False

    logger.info("📥 Picked upload %s/%s", event.owner, event.permlink)
    with session_factory() as db:
        try:
            job = handle_upload_finished(db, event)
        except EmbedVideoError as e:
            # pin and store failures have already marked the video failed
            logger.error("Upload %s/%s failed: %s", event.owner, event.permlink, e)
            return False
    return job is not None


def run_worker(client=None, session_factory=SessionLocal, block_timeout: int = 3) -> None:
    client = client or redis_client
    logger.info("🚀 Upload worker started, waiting on '%s'", QUEUE_NAME)

    while not stop_event.is_set():
        try:
            item = client.blpop(QUEUE_NAME, timeout=block_timeout)
        except redis.RedisError as e:
            logger.warning("Redis error while waiting for uploads: %s", e)
            time.sleep(2)
            continue

        if not item:
            continue

        _, payload = item
        try:
            handle_message(payload, session_factory)
        except Exception:
            # store outages etc.; keep the worker alive for the next event
            logger.exception("Unexpected error handling upload event")

    logger.info("🛑 Upload worker stopped")


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    signal.signal(signal.SIGTERM, _request_stop)
    signal.signal(signal.SIGINT, _request_stop)
    run_worker()


if __name__ == "__main__":
    main()
