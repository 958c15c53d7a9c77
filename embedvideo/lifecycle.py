# embedvideo/lifecycle.py
"""
Video state transitions.

    uploading -> processing -> published
    uploading | processing -> failed
    published | failed -> deleted   (admin soft-delete)

Every transition checks the current state first. Once a video is published
or deleted it can no longer be failed.
"""
import logging

from sqlalchemy.orm import Session

from . import repo
from .errors import InvalidTransition, VideoNotFound
from .models.models import Video, VideoStatus

logger = logging.getLogger(__name__)

# accepted source states; each includes its own target so replays are no-ops
PUBLISHABLE = (VideoStatus.PROCESSING, VideoStatus.PUBLISHED)
FAILABLE = (VideoStatus.UPLOADING, VideoStatus.PROCESSING, VideoStatus.FAILED)


def _require(db: Session, permlink: str) -> Video:
    video = repo.get_video(db, permlink)
    if video is None:
        raise VideoNotFound(permlink)
    return video


def begin_upload(
    db: Session,
    owner: str,
    permlink: str,
    frontend_app: str,
    short: bool,
    size: int | None = None,
    original_filename: str | None = None,
) -> Video:
    """Create the video row in `uploading`. Raises DuplicateVideo on a permlink clash."""
    video = repo.create_video(
        db,
        owner=owner,
        permlink=permlink,
        frontend_app=frontend_app,
        short=short,
        size=size,
        original_filename=original_filename,
    )
    logger.info(
        "Upload created: %s/%s [%s] (%s, %s bytes)",
        owner, permlink, frontend_app, "short" if short else "long", size,
    )
    return video


def mark_processing(db: Session, permlink: str, input_cid: str, size: int | None = None) -> None:
    video = _require(db, permlink)
    if video.status != VideoStatus.UPLOADING:
        raise InvalidTransition(permlink, video.status, VideoStatus.PROCESSING)

    fields = {"status": VideoStatus.PROCESSING, "input_cid": input_cid, "encoding_progress": 0}
    if size is not None:
        fields["size"] = size
    repo.update_video(db, permlink, **fields)


def mark_published(db: Session, permlink: str, manifest_cid: str) -> None:
    video = _require(db, permlink)
    if video.status not in PUBLISHABLE:
        raise InvalidTransition(permlink, video.status, VideoStatus.PUBLISHED)
    repo.update_video(
        db, permlink,
        status=VideoStatus.PUBLISHED,
        manifest_cid=manifest_cid,
        encoding_progress=100,
    )


def mark_failed(db: Session, permlink: str) -> None:
    # idempotent: a second call only refreshes updated_at
    video = _require(db, permlink)
    if video.status not in FAILABLE:
        raise InvalidTransition(permlink, video.status, VideoStatus.FAILED)
    repo.update_video(db, permlink, status=VideoStatus.FAILED, encoding_progress=0)


def set_thumbnail(db: Session, permlink: str, thumbnail_url: str) -> None:
    video = _require(db, permlink)
    if video.status == VideoStatus.DELETED:
        raise InvalidTransition(permlink, video.status, "thumbnail")
    repo.update_video(db, permlink, thumbnail_url=thumbnail_url)


def mark_deleted(db: Session, permlink: str) -> None:
    video = _require(db, permlink)
    if video.status == VideoStatus.DELETED:
        return
    if video.status not in (VideoStatus.PUBLISHED, VideoStatus.FAILED):
        raise InvalidTransition(permlink, video.status, VideoStatus.DELETED)
    repo.update_video(db, permlink, status=VideoStatus.DELETED)
