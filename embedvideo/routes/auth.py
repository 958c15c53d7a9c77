# embedvideo/routes/auth.py
import logging
import secrets

from fastapi import BackgroundTasks, Depends, Header, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from embedvideo import repo
from embedvideo.config import Settings, get_settings
from embedvideo.db import get_session_factory
from embedvideo.models.models import ApiKey
from embedvideo.utils.id_utils import mask_key

logger = logging.getLogger(__name__)


def get_db(session_factory=Depends(get_session_factory)):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


def _bearer(authorization: str | None) -> str | None:
    if authorization and authorization.startswith("Bearer "):
        return authorization[len("Bearer "):].strip() or None
    return authorization or None


def touch_api_key_last_used(session_factory, key: str) -> None:
    """Best-effort last-used stamp; runs after the response, never fails the request."""
    try:
        with session_factory() as db:
            repo.touch_api_key(db, key)
    except SQLAlchemyError:
        logger.exception("Failed to update last-used for API key %s", mask_key(key))


# ────────────────────────────────
# API key (apps calling the upload API)
# ────────────────────────────────
def require_api_key(
    background_tasks: BackgroundTasks,
    x_api_key: str | None = Header(None, alias="X-API-Key"),
    authorization: str | None = Header(None),
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
) -> ApiKey:
    key = x_api_key or _bearer(authorization)
    if not key:
        raise HTTPException(
            status_code=401,
            detail="API key required. Provide it in X-API-Key or Authorization header.",
        )

    api_key = repo.get_api_key(db, key)
    if api_key is None:
        raise HTTPException(status_code=401, detail="Invalid API key")
    if not api_key.active:
        raise HTTPException(status_code=403, detail="API key revoked")

    background_tasks.add_task(touch_api_key_last_used, session_factory, key)
    return api_key


# ────────────────────────────────
# Admin password
# ────────────────────────────────
def require_admin(
    x_admin_password: str | None = Header(None, alias="X-Admin-Password"),
    authorization: str | None = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    password = x_admin_password or _bearer(authorization)
    if not password:
        raise HTTPException(
            status_code=401,
            detail="Admin password required. Provide it in X-Admin-Password or Authorization header.",
        )
    if not secrets.compare_digest(password.encode(), settings.admin_password.encode()):
        logger.warning("Admin auth failed")
        raise HTTPException(status_code=403, detail="Invalid admin password")


# ────────────────────────────────
# Encoder webhook secret
# ────────────────────────────────
def webhook_key_matches(provided: str | None, expected: str) -> bool:
    # an unset secret matches nothing
    if not provided or not expected:
        return False
    return secrets.compare_digest(provided.encode(), expected.encode())
