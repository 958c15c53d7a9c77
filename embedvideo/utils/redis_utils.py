# embedvideo/utils/redis_utils.py
import json
import logging

import redis

from ..config import get_settings

logger = logging.getLogger(__name__)

# ───────────────────────────────────────────────
# Redis Connection (works for local & prod, redis:// or rediss://)
# ───────────────────────────────────────────────
_settings = get_settings()

redis_client = redis.Redis.from_url(
    _settings.redis_url,
    decode_responses=True,
    socket_connect_timeout=5,
    socket_timeout=10,
    retry_on_timeout=True,
)

QUEUE_NAME = _settings.upload_events_queue


def enqueue_upload_finished(owner: str, permlink: str, local_file_path: str, size: int | None = None, client=None) -> None:
    """
    Push an "upload finished" event for the worker. The upload transport
    calls this once a transfer has been fully received.
    """
    event = {
        "owner": owner,
        "permlink": permlink,
        "local_file_path": local_file_path,
        "size": size,
    }
    (client or redis_client).rpush(QUEUE_NAME, json.dumps(event))
    logger.info("📩 Queued upload %s/%s → Redis queue '%s'", owner, permlink, QUEUE_NAME)
