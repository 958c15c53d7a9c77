# tests/test_routes.py
from unittest.mock import patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from conftest import ADMIN_PASSWORD, APP_KEY, pinned_video
from embedvideo import lifecycle, repo
from embedvideo.models.models import JobStatus, VideoStatus

ADMIN = {"X-Admin-Password": ADMIN_PASSWORD}
APP = {"X-API-Key": APP_KEY}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok", "service": "embedvideo-upload"}


# ─────────── Uploads ───────────

def test_create_upload(db, client, app_key):
    resp = client.post("/uploads", headers=APP,
                       json={"owner": "alice", "frontend_app": "snapie", "size": 2048, "filename": "clip.mp4"})

    assert resp.status_code == 200
    body = resp.json()
    permlink = body["permlink"]
    assert len(permlink) == 8
    assert body["app_name"] == "testapp"
    assert body["embed_url"] == f"https://play.example/embed?v=alice/{permlink}"
    assert resp.headers["X-Embed-URL"] == body["embed_url"]

    video = repo.get_video(db, permlink)
    assert video.status == VideoStatus.UPLOADING
    assert video.original_filename == "clip.mp4"
    assert video.size == 2048


def test_create_upload_accepts_bearer(client, app_key):
    resp = client.post("/uploads", headers={"Authorization": f"Bearer {APP_KEY}"}, json={"owner": "alice"})
    assert resp.status_code == 200


def test_create_upload_touches_key(db, client, app_key):
    client.post("/uploads", headers=APP, json={"owner": "alice"})

    db.expire_all()
    assert repo.get_api_key(db, APP_KEY).last_used is not None


@pytest.mark.parametrize("headers, status", [
    ({}, 401),
    ({"X-API-Key": "sk_nope_000"}, 401),
])
def test_create_upload_rejects_bad_key(client, app_key, headers, status):
    assert client.post("/uploads", headers=headers, json={"owner": "alice"}).status_code == status


def test_create_upload_rejects_revoked_key(db, client, app_key):
    repo.update_api_key_status(db, APP_KEY, False)
    assert client.post("/uploads", headers=APP, json={"owner": "alice"}).status_code == 403


def test_create_upload_rejects_negative_size(client, app_key):
    assert client.post("/uploads", headers=APP, json={"owner": "alice", "size": -1}).status_code == 400


def test_create_upload_retries_permlink_collision(db, client, app_key):
    repo.create_video(db, owner="bob", permlink="taken000")

    with patch("embedvideo.routes.upload.generate_permlink", side_effect=["taken000", "fresh000"]):
        resp = client.post("/uploads", headers=APP, json={"owner": "alice"})

    assert resp.status_code == 200
    assert resp.json()["permlink"] == "fresh000"
    assert repo.get_video(db, "taken000").owner == "bob"


def test_create_upload_gives_up_after_repeated_collisions(db, client, app_key):
    repo.create_video(db, owner="bob", permlink="taken000")

    with patch("embedvideo.routes.upload.generate_permlink", return_value="taken000"):
        resp = client.post("/uploads", headers=APP, json={"owner": "alice"})

    assert resp.status_code == 409


# ─────────── Videos ───────────

def test_get_video(db, client):
    lifecycle.begin_upload(db, "alice", "ab12cd34", "snapie", True)

    body = client.get("/video/ab12cd34").json()

    assert body["owner"] == "alice"
    assert body["status"] == "uploading"
    assert body["short"] is True
    assert body["encodingProgress"] == 0


def test_get_missing_video(client):
    assert client.get("/video/zzzzzzzz").status_code == 404


def test_update_thumbnail(db, client, app_key):
    lifecycle.begin_upload(db, "alice", "ab12cd34", "snapie", False)

    resp = client.post("/video/ab12cd34/thumbnail", headers=APP, json={"thumbnail_url": "https://img/t.jpg"})

    assert resp.json() == {"success": True, "thumbnail_url": "https://img/t.jpg"}
    db.expire_all()
    assert repo.get_video(db, "ab12cd34").thumbnail_url == "https://img/t.jpg"


@pytest.mark.parametrize("permlink, body, status", [
    ("ab12cd34", {}, 400),
    ("zzzzzzzz", {"thumbnail_url": "https://img/t.jpg"}, 404),
])
def test_update_thumbnail_errors(db, client, app_key, permlink, body, status):
    lifecycle.begin_upload(db, "alice", "ab12cd34", "snapie", False)
    assert client.post(f"/video/{permlink}/thumbnail", headers=APP, json=body).status_code == status


def test_update_thumbnail_on_deleted_video(db, client, app_key):
    lifecycle.begin_upload(db, "alice", "ab12cd34", "snapie", False)
    lifecycle.mark_failed(db, "ab12cd34")
    lifecycle.mark_deleted(db, "ab12cd34")

    resp = client.post("/video/ab12cd34/thumbnail", headers=APP, json={"thumbnail_url": "https://img/t.jpg"})

    assert resp.status_code == 409


# ─────────── Admin ───────────

@pytest.mark.parametrize("headers, status", [
    ({}, 401),
    ({"X-Admin-Password": "guess"}, 403),
    ({"Authorization": f"Bearer {ADMIN_PASSWORD}"}, 200),
])
def test_admin_auth(client, headers, status):
    assert client.get("/admin/summary", headers=headers).status_code == status


def test_admin_api_keys(db, client):
    resp = client.post("/admin/api-keys", headers=ADMIN, json={"app_name": "My App!", "owner": "carol"})
    key = resp.json()["key"]
    assert key.startswith("sk_myapp_")

    listed = client.get("/admin/api-keys", headers=ADMIN).json()["keys"]
    assert [k["owner"] for k in listed] == ["carol"]

    resp = client.patch(f"/admin/api-keys/{key}", headers=ADMIN, json={"active": False})
    assert resp.json()["active"] is False
    db.expire_all()
    assert repo.get_api_key(db, key).active is False


def test_admin_api_key_errors(client):
    assert client.post("/admin/api-keys", headers=ADMIN, json={"app_name": "x"}).status_code == 400
    assert client.patch("/admin/api-keys/sk_missing", headers=ADMIN, json={"active": True}).status_code == 404


def test_admin_summary_and_jobs(db, client):
    pinned_video(db, permlink="aaaaaaaa")
    pinned_video(db, permlink="bbbbbbbb")
    repo.update_job(db, "alice", "bbbbbbbb", status=JobStatus.FAILED, last_error="boom")

    summary = client.get("/admin/summary", headers=ADMIN).json()
    assert summary["total_jobs"] == 2
    assert summary["jobs"]["pending"] == 1
    assert summary["jobs"]["failed"] == 1
    assert summary["enabled_encoders"] == 1
    assert summary["dispatcher_running"] is False

    failed = client.get("/admin/jobs", headers=ADMIN, params={"status": "failed"}).json()["jobs"]
    assert [(j["permlink"], j["lastError"]) for j in failed] == [("bbbbbbbb", "boom")]

    assert client.get("/admin/jobs", headers=ADMIN, params={"status": "bogus"}).status_code == 400


def test_admin_list_videos(db, client):
    lifecycle.begin_upload(db, "alice", "aaaaaaaa", "snapie", False)
    pinned_video(db, permlink="bbbbbbbb")

    videos = client.get("/admin/videos", headers=ADMIN, params={"status": "processing"}).json()["videos"]

    assert [v["permlink"] for v in videos] == ["bbbbbbbb"]


def test_admin_stale_videos(client):
    resp = client.get("/admin/videos/stale", headers=ADMIN, params={"status": "uploading", "hours": 1})
    assert resp.json() == {"videos": []}

    assert client.get("/admin/videos/stale", headers=ADMIN, params={"status": "published"}).status_code == 400


def test_admin_delete_video(db, client):
    lifecycle.begin_upload(db, "alice", "ab12cd34", "snapie", False)
    assert client.delete("/admin/videos/ab12cd34", headers=ADMIN).status_code == 409

    lifecycle.mark_failed(db, "ab12cd34")
    resp = client.delete("/admin/videos/ab12cd34", headers=ADMIN)

    assert resp.json()["status"] == "deleted"
    db.expire_all()
    assert repo.get_video(db, "ab12cd34").status == VideoStatus.DELETED
    assert client.delete("/admin/videos/zzzzzzzz", headers=ADMIN).status_code == 404


def test_admin_encoders(client):
    assert client.get("/admin/encoders", headers=ADMIN).json() == {
        "encoders": [{"name": "w1", "url": "http://w1.example", "enabled": True}],
    }

    resp = client.patch("/admin/encoders/w1", headers=ADMIN, json={"enabled": False})
    assert resp.json()["encoder"]["enabled"] is False
    assert client.get("/admin/summary", headers=ADMIN).json()["enabled_encoders"] == 0

    assert client.patch("/admin/encoders/w9", headers=ADMIN, json={"enabled": True}).status_code == 404


def test_last_used_write_failure_does_not_fail_upload(db, client, app_key):
    with patch("embedvideo.routes.auth.repo.touch_api_key", side_effect=SQLAlchemyError("database is locked")) as touch:
        resp = client.post("/uploads", headers=APP, json={"owner": "alice"})

    assert resp.status_code == 200
    touch.assert_called_once()
    db.expire_all()
    assert repo.get_video(db, resp.json()["permlink"]).status == VideoStatus.UPLOADING
    assert repo.get_api_key(db, APP_KEY).last_used is None
