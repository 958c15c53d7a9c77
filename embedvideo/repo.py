# embedvideo/repo.py
from datetime import timedelta

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import DuplicateApiKey, DuplicateJob, DuplicateVideo
from .models.models import ApiKey, EncodingJob, JobStatus, Video, VideoStatus, utcnow


# ─────────── Videos ───────────

def create_video(
    db: Session,
    owner: str,
    permlink: str,
    frontend_app: str = "unknown",
    short: bool = False,
    size: int | None = None,
    original_filename: str | None = None,
) -> Video:
    now = utcnow()
    video = Video(
        owner=owner,
        permlink=permlink,
        frontend_app=frontend_app,
        status=VideoStatus.UPLOADING,
        input_cid=None,
        manifest_cid=None,
        thumbnail_url=None,
        short=short,
        duration=None,
        size=size,
        encoding_progress=0,
        original_filename=original_filename,
        created_at=now,
        updated_at=now,
    )
    db.add(video)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise DuplicateVideo(permlink) from e
    db.refresh(video)
    return video


def get_video(db: Session, permlink: str) -> Video | None:
    return db.query(Video).filter(Video.permlink == permlink).first()


def update_video(db: Session, permlink: str, **fields) -> bool:
    """Merge-patch the named fields; updated_at is always refreshed."""
    fields["updated_at"] = utcnow()
    changed = (
        db.query(Video)
        .filter(Video.permlink == permlink)
        .update(fields, synchronize_session=False)
    )
    db.commit()
    return changed > 0


def list_videos(db: Session, status: str | None = None, limit: int = 100) -> list[Video]:
    query = db.query(Video)
    if status:
        query = query.filter(Video.status == status)
    return query.order_by(Video.created_at.desc()).limit(limit).all()


def get_stale_uploads(db: Session, hours_old: float) -> list[Video]:
    cutoff = utcnow() - timedelta(hours=hours_old)
    return (
        db.query(Video)
        .filter(Video.status == VideoStatus.UPLOADING, Video.created_at < cutoff)
        .order_by(Video.created_at.asc())
        .all()
    )


def get_stale_processing(db: Session, hours_old: float) -> list[Video]:
    cutoff = utcnow() - timedelta(hours=hours_old)
    return (
        db.query(Video)
        .filter(Video.status == VideoStatus.PROCESSING, Video.updated_at < cutoff)
        .order_by(Video.updated_at.asc())
        .all()
    )


# ─────────── Encoding jobs ───────────

def create_job(db: Session, owner: str, permlink: str) -> EncodingJob:
    now = utcnow()
    job = EncodingJob(
        owner=owner,
        permlink=permlink,
        status=JobStatus.PENDING,
        assigned_worker=None,
        encoder_job_id=None,
        assigned_at=None,
        attempt_count=0,
        last_error=None,
        webhook_received_at=None,
        created_at=now,
        updated_at=now,
    )
    db.add(job)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise DuplicateJob(owner, permlink) from e
    db.refresh(job)
    return job


def get_job(db: Session, owner: str, permlink: str) -> EncodingJob | None:
    return (
        db.query(EncodingJob)
        .filter(EncodingJob.owner == owner, EncodingJob.permlink == permlink)
        .first()
    )


def get_pending_jobs(db: Session, limit: int = 10) -> list[EncodingJob]:
    return (
        db.query(EncodingJob)
        .filter(EncodingJob.status == JobStatus.PENDING)
        .order_by(EncodingJob.created_at.asc(), EncodingJob.id.asc())
        .limit(limit)
        .all()
    )


def _job_query(db: Session, owner: str, permlink: str, expected_status):
    query = db.query(EncodingJob).filter(EncodingJob.owner == owner, EncodingJob.permlink == permlink)
    if isinstance(expected_status, str):
        query = query.filter(EncodingJob.status == expected_status)
    elif expected_status is not None:
        query = query.filter(EncodingJob.status.in_(tuple(expected_status)))
    return query


def update_job(db: Session, owner: str, permlink: str, expected_status=None, **fields) -> bool:
    """
    Merge-patch a job. With expected_status (a status or a collection of them)
    the write only lands if the job is currently in that status; the return
    value says whether a row changed.
    """
    fields["updated_at"] = utcnow()
    changed = _job_query(db, owner, permlink, expected_status).update(fields, synchronize_session=False)
    db.commit()
    return changed > 0


def increment_job_attempt(db: Session, owner: str, permlink: str, expected_status=None) -> bool:
    changed = _job_query(db, owner, permlink, expected_status).update(
        {
            EncodingJob.attempt_count: EncodingJob.attempt_count + 1,
            EncodingJob.updated_at: utcnow(),
        },
        synchronize_session=False,
    )
    db.commit()
    return changed > 0


def list_jobs(db: Session, status: str | None = None, limit: int = 100) -> list[EncodingJob]:
    query = db.query(EncodingJob)
    if status:
        query = query.filter(EncodingJob.status == status)
    return query.order_by(EncodingJob.created_at.desc()).limit(limit).all()


def count_jobs_by_status(db: Session) -> dict[str, int]:
    counts = dict.fromkeys(JobStatus.ALL, 0)
    rows = db.query(EncodingJob.status, func.count(EncodingJob.id)).group_by(EncodingJob.status).all()
    for status, count in rows:
        counts[status] = count
    return counts


# ─────────── API keys ───────────

def create_api_key(db: Session, key: str, app_name: str, owner: str, active: bool = True) -> ApiKey:
    api_key = ApiKey(key=key, app_name=app_name, owner=owner, active=active, created_at=utcnow(), last_used=None)
    db.add(api_key)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise DuplicateApiKey(f"API key already exists for {app_name}") from e
    db.refresh(api_key)
    return api_key


def get_api_key(db: Session, key: str) -> ApiKey | None:
    return db.query(ApiKey).filter(ApiKey.key == key).first()


def get_all_api_keys(db: Session) -> list[ApiKey]:
    return db.query(ApiKey).order_by(ApiKey.created_at.desc()).all()


def update_api_key_status(db: Session, key: str, active: bool) -> bool:
    changed = db.query(ApiKey).filter(ApiKey.key == key).update({"active": active}, synchronize_session=False)
    db.commit()
    return changed > 0


def touch_api_key(db: Session, key: str) -> None:
    db.query(ApiKey).filter(ApiKey.key == key).update({"last_used": utcnow()}, synchronize_session=False)
    db.commit()
