# embedvideo/pipeline.py
import logging
import os

from pydantic import BaseModel
from sqlalchemy.orm import Session

from . import lifecycle, repo
from .errors import InvalidTransition, NotFound, VideoNotFound
from .models.models import EncodingJob, VideoStatus
from .utils.ipfs_utils import pin_file

logger = logging.getLogger(__name__)


class UploadFinished(BaseModel):
    owner: str
    permlink: str
    local_file_path: str
    size: int | None = None


def handle_upload_finished(db: Session, event: UploadFinished, pin=pin_file) -> EncodingJob | None:
    """
    Pin the finished upload, move the video to `processing` and queue its
    encoding job. Any failure marks the video `failed` and is re-raised.

    Events for a video that has already left `uploading` (replays) are
    skipped and None is returned.
    """
    owner, permlink = event.owner, event.permlink

    video = repo.get_video(db, permlink)
    if video is None:
        raise VideoNotFound(permlink)
    if video.status != VideoStatus.UPLOADING:
        logger.warning("Skipping upload event for %s/%s: video is already %s", owner, permlink, video.status)
        return None

    try:
        input_cid = pin(event.local_file_path)
        lifecycle.mark_processing(db, permlink, input_cid, size=event.size)
        job = repo.create_job(db, owner, permlink)
    except InvalidTransition:
        # someone else moved the video on while we were pinning
        db.rollback()
        raise
    except Exception as e:
        logger.error("Upload finish error for %s/%s: %s", owner, permlink, e)
        db.rollback()
        try:
            lifecycle.mark_failed(db, permlink)
        except (NotFound, InvalidTransition) as mark_error:
            logger.warning("Could not mark %s/%s failed: %s", owner, permlink, mark_error)
        raise

    logger.info("Upload completed: %s/%s - pinned %s - job created", owner, permlink, input_cid)

    try:
        os.remove(event.local_file_path)
        logger.debug("Upload file cleaned up: %s", event.local_file_path)
    except OSError as e:
        logger.warning("Failed to clean up upload file %s: %s", event.local_file_path, e)

    return job
