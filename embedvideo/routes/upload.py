# embedvideo/routes/upload.py
import logging

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from embedvideo import lifecycle
from embedvideo.config import Settings, get_settings
from embedvideo.errors import DuplicateVideo
from embedvideo.models.models import ApiKey
from embedvideo.routes.auth import get_db, require_api_key
from embedvideo.utils.id_utils import generate_permlink

logger = logging.getLogger(__name__)

router = APIRouter()

PERMLINK_RETRIES = 3


class UploadRequest(BaseModel):
    owner: str
    frontend_app: str = "unknown"
    short: bool = False
    size: int | None = None
    filename: str | None = None


@router.post("/uploads")
def create_upload(
    req: UploadRequest,
    response: Response,
    api_key: ApiKey = Depends(require_api_key),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Called by the upload transport when a transfer starts. Registers the
    video as `uploading` under a fresh permlink and returns its embed URL.
    """
    if req.size is not None and req.size < 0:
        raise HTTPException(status_code=400, detail="size must be >= 0")

    for _ in range(PERMLINK_RETRIES):
        permlink = generate_permlink()
        try:
            video = lifecycle.begin_upload(
                db,
                owner=req.owner,
                permlink=permlink,
                frontend_app=req.frontend_app,
                short=req.short,
                size=req.size,
                original_filename=req.filename,
            )
            break
        except DuplicateVideo:
            logger.warning("Permlink collision on %s, regenerating", permlink)
    else:
        raise HTTPException(status_code=409, detail="Could not allocate a unique permlink")

    embed_url = f"{settings.base_url}?v={video.owner}/{video.permlink}"
    response.headers["X-Embed-URL"] = embed_url

    return {
        "ok": True,
        "owner": video.owner,
        "permlink": video.permlink,
        "embed_url": embed_url,
        "app_name": api_key.app_name,
    }
