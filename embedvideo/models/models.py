# embedvideo/models/models.py

from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, Boolean, DateTime, Float, Text, UniqueConstraint

from ..db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class VideoStatus:
    UPLOADING = "uploading"
    PROCESSING = "processing"
    PUBLISHED = "published"
    FAILED = "failed"
    DELETED = "deleted"


class JobStatus:
    PENDING = "pending"
    ENCODING = "encoding"
    COMPLETED = "completed"
    FAILED = "failed"

    ALL = (PENDING, ENCODING, COMPLETED, FAILED)


class Video(Base):
    __tablename__ = "videos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner = Column(String, nullable=False, index=True)
    permlink = Column(String(8), unique=True, nullable=False)
    frontend_app = Column(String, nullable=False, default="unknown")
    status = Column(String, nullable=False, default=VideoStatus.UPLOADING, index=True)

    input_cid = Column(String, nullable=True)
    manifest_cid = Column(String, nullable=True)
    thumbnail_url = Column(Text, nullable=True)
    short = Column(Boolean, nullable=False, default=False)
    duration = Column(Float, nullable=True)
    size = Column(Integer, nullable=True)
    encoding_progress = Column(Integer, nullable=False, default=0)
    original_filename = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "owner": self.owner,
            "permlink": self.permlink,
            "frontend_app": self.frontend_app,
            "status": self.status,
            "input_cid": self.input_cid,
            "manifest_cid": self.manifest_cid,
            "thumbnail_url": self.thumbnail_url,
            "short": self.short,
            "duration": self.duration,
            "size": self.size,
            "encodingProgress": self.encoding_progress,
            "originalFilename": self.original_filename,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


class EncodingJob(Base):
    __tablename__ = "encoding_jobs"
    __table_args__ = (UniqueConstraint("owner", "permlink", name="uq_encoding_jobs_owner_permlink"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner = Column(String, nullable=False)
    permlink = Column(String(8), nullable=False)
    status = Column(String, nullable=False, default=JobStatus.PENDING, index=True)

    assigned_worker = Column(String, nullable=True)
    encoder_job_id = Column(String, nullable=True)
    assigned_at = Column(DateTime(timezone=True), nullable=True)
    attempt_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    webhook_received_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "owner": self.owner,
            "permlink": self.permlink,
            "status": self.status,
            "assignedWorker": self.assigned_worker,
            "encoderJobId": self.encoder_job_id,
            "assignedAt": _iso(self.assigned_at),
            "attemptCount": self.attempt_count,
            "lastError": self.last_error,
            "webhookReceivedAt": _iso(self.webhook_received_at),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


class ApiKey(Base):
    __tablename__ = "api_keys"

    key = Column(String, primary_key=True)
    app_name = Column(String, nullable=False)
    owner = Column(String, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    last_used = Column(DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "app_name": self.app_name,
            "owner": self.owner,
            "active": self.active,
            "createdAt": _iso(self.created_at),
            "lastUsed": _iso(self.last_used),
        }
