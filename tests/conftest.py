# tests/conftest.py
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DEMO_API_KEY", "")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from embedvideo import repo
from embedvideo.config import EncoderConfig, Settings, get_settings
from embedvideo.db import Base, get_session_factory
from embedvideo.dispatcher import JobDispatcher
from embedvideo.models import models  # noqa: F401

WEBHOOK_KEY = "hook-secret"
ADMIN_PASSWORD = "admin-secret"
APP_KEY = "sk_testapp_0123456789abcdef"

TEST_SETTINGS = Settings(
    base_url="https://play.example/embed",
    admin_password=ADMIN_PASSWORD,
    webhook_url="https://upload.example/webhook",
    webhook_api_key=WEBHOOK_KEY,
    ipfs_gateway_url="https://ipfs.example/ipfs",
    encoders=(EncoderConfig(name="w1", url="http://w1.example", api_key="w1-key"),),
)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    with session_factory() as session:
        yield session


def make_dispatcher(session_factory, encoders=None, **kwargs):
    return JobDispatcher(
        session_factory,
        TEST_SETTINGS.encoders if encoders is None else encoders,
        webhook_url=TEST_SETTINGS.webhook_url,
        webhook_api_key=TEST_SETTINGS.webhook_api_key,
        gateway_url=TEST_SETTINGS.ipfs_gateway_url,
        request_timeout=5,
        **kwargs,
    )


@pytest.fixture
def client(session_factory):
    from embedvideo.main import app

    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_settings] = lambda: TEST_SETTINGS
    app.state.dispatcher = make_dispatcher(session_factory)
    yield TestClient(app)
    app.dependency_overrides.clear()
    del app.state.dispatcher


@pytest.fixture
def app_key(db):
    return repo.create_api_key(db, key=APP_KEY, app_name="testapp", owner="alice")


def pinned_video(db, owner="alice", permlink="ab12cd34", cid="Qm123", **kwargs):
    """A video that has been pinned, plus its pending job."""
    repo.create_video(db, owner=owner, permlink=permlink, frontend_app="snapie", **kwargs)
    repo.update_video(db, permlink, status=models.VideoStatus.PROCESSING, input_cid=cid)
    return repo.create_job(db, owner, permlink)
