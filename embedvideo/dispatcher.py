# embedvideo/dispatcher.py
"""
Encoding job dispatcher.

Polls the store for `pending` jobs, hands each one to an encoder picked
round-robin and records the outcome. A failed attempt puts the job back to
`pending`; once MAX_DISPATCH_ATTEMPTS failures have already been recorded the
next one fails the job and its video for good.
"""
import dataclasses
import logging
import threading

import requests
from sqlalchemy.orm import Session

from . import lifecycle, repo
from .config import EncoderConfig
from .errors import (
    InvalidTransition,
    MissingInputCid,
    MissingVideo,
    NoWorkersAvailable,
    NotFound,
    WorkerRejected,
    WorkerTimeout,
    WorkerUnavailable,
)
from .models.models import JobStatus, Video, utcnow

logger = logging.getLogger(__name__)

MAX_DISPATCH_ATTEMPTS = 3
DEFAULT_BATCH_SIZE = 5
DEFAULT_INTERVAL_SEC = 30.0


class JobDispatcher:
    def __init__(
        self,
        session_factory,
        encoders,
        webhook_url: str,
        webhook_api_key: str,
        gateway_url: str = "https://ipfs.3speak.tv/ipfs",
        request_timeout: float = 30.0,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self._session_factory = session_factory
        self._encoders = list(encoders)
        self._webhook_url = webhook_url
        self._webhook_api_key = webhook_api_key
        self._gateway_url = gateway_url.rstrip("/")
        self._timeout = request_timeout
        self._batch_size = batch_size

        # round-robin cursor; read-and-increment only under _cursor_lock
        self._cursor = 0
        self._cursor_lock = threading.Lock()
        self._encoders_lock = threading.Lock()

        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # ─────────── Encoders ───────────

    @property
    def encoders(self) -> list[EncoderConfig]:
        with self._encoders_lock:
            return list(self._encoders)

    def enabled_encoders(self) -> list[EncoderConfig]:
        return [e for e in self.encoders if e.enabled]

    def set_encoder_enabled(self, name: str, enabled: bool) -> EncoderConfig:
        """Toggle an encoder in the rotation. The cursor is left where it is."""
        with self._encoders_lock:
            for i, encoder in enumerate(self._encoders):
                if encoder.name == name:
                    self._encoders[i] = dataclasses.replace(encoder, enabled=enabled)
                    logger.info("Encoder [%s] %s", name, "enabled" if enabled else "disabled")
                    return self._encoders[i]
        raise KeyError(name)

    def next_encoder(self) -> EncoderConfig:
        enabled = self.enabled_encoders()
        if not enabled:
            raise NoWorkersAvailable()

        with self._cursor_lock:
            index = self._cursor
            self._cursor += 1
        return enabled[index % len(enabled)]

    # ─────────── Poll loop ───────────

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, interval_seconds: float = DEFAULT_INTERVAL_SEC) -> None:
        if self.is_running:
            logger.info("Dispatcher already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            args=(interval_seconds,),
            name="job-dispatcher",
            daemon=True,
        )
        logger.info("Starting job dispatcher (polling every %ss)", interval_seconds)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Stop polling; a cycle already in flight is allowed to finish."""
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join(timeout)
        self._thread = None
        logger.info("Job dispatcher stopped")

    def _run(self, interval_seconds: float) -> None:
        # run immediately, then on interval
        while not self._stop_event.is_set():
            self.process_jobs()
            if self._stop_event.wait(interval_seconds):
                break

    def process_jobs(self) -> int:
        """Run one poll cycle. Returns how many jobs were handed to an encoder."""
        try:
            with self._session_factory() as db:
                pending = repo.get_pending_jobs(db, self._batch_size)
                # detach plain snapshots; each job gets its own session below
                batch = [(job.owner, job.permlink, job.attempt_count) for job in pending]
        except Exception:
            logger.exception("Error fetching pending jobs")
            return 0

        if not batch:
            return 0

        logger.info("Found %d pending job(s)", len(batch))
        dispatched = 0
        for owner, permlink, attempt_count in batch:
            if self._process_one(owner, permlink, attempt_count):
                dispatched += 1
        return dispatched

    def _process_one(self, owner: str, permlink: str, attempt_count: int) -> bool:
        with self._session_factory() as db:
            try:
                self.dispatch_job(db, owner, permlink)
                return True
            except Exception as error:
                # every kind of failure (encoder, network, store) counts against the budget
                logger.error("Failed to dispatch job %s/%s: %s", owner, permlink, error)
                db.rollback()
                try:
                    self.record_failure(db, owner, permlink, attempt_count, error)
                except Exception:
                    db.rollback()
                    logger.exception("Could not record dispatch failure for %s/%s", owner, permlink)
                return False

    # ─────────── Dispatch ───────────

    def build_request(self, owner: str, permlink: str, video: Video) -> dict:
        return {
            "owner": owner,
            "permlink": permlink,
            "input_cid": f"{self._gateway_url}/{video.input_cid}",
            "short": video.short,
            "webhook_url": self._webhook_url,
            "api_key": self._webhook_api_key,
            "frontend_app": video.frontend_app,
            "originalFilename": video.original_filename,
        }

    def dispatch_job(self, db: Session, owner: str, permlink: str) -> EncoderConfig:
        video = repo.get_video(db, permlink)
        if video is None:
            raise MissingVideo(permlink)
        if not video.input_cid:
            raise MissingInputCid(permlink)

        payload = self.build_request(owner, permlink, video)
        encoder = self.next_encoder()
        logger.info("Dispatching job to encoder [%s]: %s/%s", encoder.name, owner, permlink)
        logger.debug("Encoder request payload: %s", {**payload, "api_key": "***"})

        encoder_job_id = self.send_to_encoder(encoder, payload)
        logger.info("Job dispatched successfully to [%s]: %s", encoder.name, encoder_job_id)

        moved = repo.update_job(
            db, owner, permlink,
            expected_status=JobStatus.PENDING,
            status=JobStatus.ENCODING,
            encoder_job_id=encoder_job_id,
            assigned_worker=encoder.name,
            assigned_at=utcnow(),
        )
        if not moved:
            logger.warning("Job %s/%s left pending before the encoder ack was recorded", owner, permlink)
        return encoder

    def send_to_encoder(self, encoder: EncoderConfig, payload: dict) -> str:
        try:
            resp = requests.post(
                f"{encoder.url.rstrip('/')}/encode",
                json=payload,
                headers={"X-API-Key": encoder.api_key},
                timeout=self._timeout,
            )
        except requests.Timeout as e:
            raise WorkerTimeout(encoder.name, self._timeout) from e
        except requests.RequestException as e:
            raise WorkerUnavailable(encoder.name, e) from e

        if not resp.ok:
            raise WorkerRejected(encoder.name, f"{resp.status_code} - {resp.text[:500]}")

        try:
            result = resp.json()
        except ValueError as e:
            raise WorkerRejected(encoder.name, "malformed JSON response") from e

        job_id = result.get("job_id") if isinstance(result, dict) else None
        if not job_id:
            raise WorkerRejected(encoder.name, "response has no job_id")
        return str(job_id)

    def record_failure(self, db: Session, owner: str, permlink: str, attempt_count: int, error: Exception) -> str:
        """
        Count a failed attempt. attempt_count is the value the job had when it
        was polled; at MAX_DISPATCH_ATTEMPTS or more the job and its video fail.
        Every write is conditional on the job still being `pending`, so a
        result the webhook recorded in the meantime is left alone.
        Returns the job's resulting status.
        """
        message = str(error)
        repo.increment_job_attempt(db, owner, permlink, expected_status=JobStatus.PENDING)

        if attempt_count < MAX_DISPATCH_ATTEMPTS:
            status, last_error = JobStatus.PENDING, message
        else:
            status, last_error = JobStatus.FAILED, f"Max attempts exceeded: {message}"

        moved = repo.update_job(
            db, owner, permlink,
            expected_status=JobStatus.PENDING,
            status=status,
            last_error=last_error,
        )
        if not moved:
            job = repo.get_job(db, owner, permlink)
            current = job.status if job else None
            logger.warning("Job %s/%s is no longer pending (%s), failure not recorded", owner, permlink, current)
            return current

        if status == JobStatus.PENDING:
            return status

        logger.error("Job %s/%s failed after %d attempts", owner, permlink, attempt_count + 1)
        try:
            lifecycle.mark_failed(db, permlink)
        except (NotFound, InvalidTransition) as e:
            logger.warning("Cannot mark video %s failed: %s", permlink, e)
        return JobStatus.FAILED
