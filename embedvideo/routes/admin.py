# embedvideo/routes/admin.py
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from embedvideo import lifecycle, repo
from embedvideo.errors import DuplicateApiKey, InvalidTransition, VideoNotFound
from embedvideo.models.models import JobStatus, VideoStatus
from embedvideo.routes.auth import get_db, require_admin
from embedvideo.utils.id_utils import generate_api_key, mask_key

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])


class ApiKeyCreate(BaseModel):
    app_name: str | None = None
    owner: str | None = None


class ActiveToggle(BaseModel):
    active: bool


class EncoderToggle(BaseModel):
    enabled: bool


def get_dispatcher(request: Request):
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        raise HTTPException(status_code=503, detail="Dispatcher not running")
    return dispatcher


# ────────────────────────────────
# API keys
# ────────────────────────────────
@router.post("/api-keys")
def create_api_key(req: ApiKeyCreate, db: Session = Depends(get_db)):
    if not req.app_name or not req.owner:
        raise HTTPException(status_code=400, detail="app_name and owner are required")

    try:
        api_key = repo.create_api_key(db, key=generate_api_key(req.app_name), app_name=req.app_name, owner=req.owner)
    except DuplicateApiKey:
        raise HTTPException(status_code=409, detail="API key collision, try again")

    logger.info("API key created for %s (%s)", req.app_name, req.owner)
    return {"success": True, "key": api_key.key, "app_name": api_key.app_name, "owner": api_key.owner}


@router.get("/api-keys")
def list_api_keys(db: Session = Depends(get_db)):
    return {"keys": [k.to_dict() for k in repo.get_all_api_keys(db)]}


@router.patch("/api-keys/{key}")
def update_api_key(key: str, req: ActiveToggle, db: Session = Depends(get_db)):
    if not repo.update_api_key_status(db, key, req.active):
        raise HTTPException(status_code=404, detail="API key not found")

    logger.info("API key %s %s", mask_key(key), "activated" if req.active else "deactivated")
    return {"success": True, "key": key, "active": req.active}


# ────────────────────────────────
# Jobs & dashboard summary
# ────────────────────────────────
@router.get("/summary")
def get_summary(request: Request, db: Session = Depends(get_db)):
    jobs = repo.count_jobs_by_status(db)
    dispatcher = getattr(request.app.state, "dispatcher", None)
    return {
        "total_jobs": sum(jobs.values()),
        "jobs": jobs,
        "enabled_encoders": len(dispatcher.enabled_encoders()) if dispatcher else 0,
        "dispatcher_running": bool(dispatcher and dispatcher.is_running),
    }


@router.get("/jobs")
def list_jobs(
    status: str | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    if status and status not in JobStatus.ALL:
        raise HTTPException(status_code=400, detail=f"status must be one of {', '.join(JobStatus.ALL)}")
    return {"jobs": [j.to_dict() for j in repo.list_jobs(db, status=status, limit=limit)]}


# ────────────────────────────────
# Videos
# ────────────────────────────────
@router.get("/videos")
def list_videos(
    status: str | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return {"videos": [v.to_dict() for v in repo.list_videos(db, status=status, limit=limit)]}


@router.get("/videos/stale")
def list_stale_videos(
    status: str = Query(VideoStatus.PROCESSING),
    hours: float = Query(6.0, gt=0),
    db: Session = Depends(get_db),
):
    if status == VideoStatus.UPLOADING:
        videos = repo.get_stale_uploads(db, hours)
    elif status == VideoStatus.PROCESSING:
        videos = repo.get_stale_processing(db, hours)
    else:
        raise HTTPException(status_code=400, detail="status must be 'uploading' or 'processing'")
    return {"videos": [v.to_dict() for v in videos]}


@router.delete("/videos/{permlink}")
def delete_video(permlink: str, db: Session = Depends(get_db)):
    try:
        lifecycle.mark_deleted(db, permlink)
    except VideoNotFound:
        raise HTTPException(status_code=404, detail="Video not found")
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))

    logger.info("Video %s soft-deleted", permlink)
    return {"success": True, "permlink": permlink, "status": VideoStatus.DELETED}


# ────────────────────────────────
# Encoders
# ────────────────────────────────
def _encoder_dict(encoder) -> dict:
    return {"name": encoder.name, "url": encoder.url, "enabled": encoder.enabled}


@router.get("/encoders")
def list_encoders(dispatcher=Depends(get_dispatcher)):
    return {"encoders": [_encoder_dict(e) for e in dispatcher.encoders]}


@router.patch("/encoders/{name}")
def update_encoder(name: str, req: EncoderToggle, dispatcher=Depends(get_dispatcher)):
    try:
        encoder = dispatcher.set_encoder_enabled(name, req.enabled)
    except KeyError:
        raise HTTPException(status_code=404, detail="Encoder not found")
    return {"success": True, "encoder": _encoder_dict(encoder)}
