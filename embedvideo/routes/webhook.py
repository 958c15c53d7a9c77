# embedvideo/routes/webhook.py
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from embedvideo import lifecycle, repo
from embedvideo.config import Settings, get_settings
from embedvideo.db import get_session_factory
from embedvideo.errors import InvalidWebhookStatus, JobNotFound, NotFound, VideoNotFound
from embedvideo.models.models import JobStatus, utcnow
from embedvideo.routes.auth import webhook_key_matches

logger = logging.getLogger(__name__)

router = APIRouter()

STATUS_COMPLETE = "complete"
STATUS_FAILED = "failed"


class EncoderReport(BaseModel):
    owner: str
    permlink: str
    status: str
    manifest_cid: str | None = None
    video_url: str | None = None
    job_id: str | int | None = None
    processing_time_seconds: float | None = None
    qualities_encoded: list | None = None
    encoder_id: str | None = None
    error: str | None = None
    timestamp: str | None = None


def apply_report(db: Session, report: EncoderReport) -> bool:
    """
    Apply an encoder's final status to the job and its video.

    Replays of the same final status are rewritten harmlessly. A report that
    would flip a job from one terminal status to the other, or move a video
    that has already left the pipeline, is ignored and False is returned.
    Both rows are checked before anything is written.
    """
    if report.status not in (STATUS_COMPLETE, STATUS_FAILED):
        raise InvalidWebhookStatus(report.status)

    owner, permlink = report.owner, report.permlink
    job = repo.get_job(db, owner, permlink)
    if job is None:
        raise JobNotFound(owner, permlink)
    video = repo.get_video(db, permlink)
    if video is None:
        raise VideoNotFound(permlink)

    if report.status == STATUS_COMPLETE:
        target = JobStatus.COMPLETED
        accepted = lifecycle.PUBLISHABLE
        fields = {"webhook_received_at": utcnow()}
    else:
        target = JobStatus.FAILED
        accepted = lifecycle.FAILABLE
        fields = {"webhook_received_at": utcnow(), "last_error": report.error or "Encoding failed"}

    if video.status not in accepted:
        logger.warning(
            "Ignoring '%s' callback for %s/%s: video is already %s",
            report.status, owner, permlink, video.status,
        )
        return False

    moved = repo.update_job(
        db, owner, permlink,
        expected_status=(JobStatus.PENDING, JobStatus.ENCODING, target),
        status=target,
        **fields,
    )
    if not moved:
        logger.warning(
            "Ignoring '%s' callback for %s/%s: job is already %s",
            report.status, owner, permlink, job.status,
        )
        return False

    if report.status == STATUS_COMPLETE:
        lifecycle.mark_published(db, permlink, report.manifest_cid)
        logger.info(
            "Video encoding completed: %s/%s - manifest %s (%ss, encoder %s)",
            owner, permlink, report.manifest_cid, report.processing_time_seconds, report.encoder_id,
        )
    else:
        lifecycle.mark_failed(db, permlink)
        logger.error("Video encoding failed: %s/%s - %s", owner, permlink, report.error)
    return True


def _apply_in_session(session_factory, report: EncoderReport) -> bool:
    with session_factory() as db:
        return apply_report(db, report)


@router.post("/webhook")
async def encoder_webhook(
    request: Request,
    x_api_key: str | None = Header(None, alias="X-API-Key"),
    session_factory=Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
):
    """
    Encoder callback: {owner, permlink, status: complete|failed, manifest_cid?, error?, ...}.
    The shared secret is checked before the body is even read.
    """
    if not webhook_key_matches(x_api_key, settings.webhook_api_key):
        logger.warning("Webhook received with invalid API key")
        raise HTTPException(status_code=401, detail="Unauthorized")

    payload = await request.body()
    try:
        report = EncoderReport.model_validate_json(payload)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid webhook body: {e.error_count()} error(s)")

    logger.info("Webhook received: %s/%s - Status: %s", report.owner, report.permlink, report.status)

    if report.status == STATUS_COMPLETE and not report.manifest_cid:
        raise HTTPException(status_code=400, detail="manifest_cid is required for status 'complete'")

    try:
        applied = await run_in_threadpool(_apply_in_session, session_factory, report)
    except InvalidWebhookStatus:
        logger.warning("Unknown webhook status: %s", report.status)
        raise HTTPException(status_code=400, detail="Unknown status")
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    if not applied:
        return {"success": True, "ignored": True, "message": "Job or video already in a different final state"}
    if report.status == STATUS_COMPLETE:
        return {"success": True, "message": "Webhook processed successfully"}
    return {"success": True, "message": "Webhook processed (failure recorded)"}
