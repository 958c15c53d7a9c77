# embedvideo/routes/videos.py
import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from embedvideo import lifecycle, repo
from embedvideo.errors import InvalidTransition, VideoNotFound
from embedvideo.routes.auth import get_db, require_api_key

logger = logging.getLogger(__name__)

router = APIRouter()


class ThumbnailRequest(BaseModel):
    thumbnail_url: str | None = None


@router.get("/video/{permlink}")
def get_video(permlink: str, db: Session = Depends(get_db)):
    video = repo.get_video(db, permlink)
    if not video:
        raise HTTPException(status_code=404, detail="Video not found")
    return video.to_dict()


@router.post("/video/{permlink}/thumbnail", dependencies=[Depends(require_api_key)])
def update_thumbnail(permlink: str, req: ThumbnailRequest, db: Session = Depends(get_db)):
    if not req.thumbnail_url:
        raise HTTPException(status_code=400, detail="thumbnail_url is required")

    try:
        lifecycle.set_thumbnail(db, permlink, req.thumbnail_url)
    except VideoNotFound:
        raise HTTPException(status_code=404, detail="Video not found")
    except InvalidTransition:
        raise HTTPException(status_code=409, detail="Video has been deleted")

    logger.info("Thumbnail updated for %s", permlink)
    return {"success": True, "thumbnail_url": req.thumbnail_url}
