# embedvideo/errors.py


class EmbedVideoError(Exception):
    """Base class for every error raised by the upload/encode pipeline."""


# ─────────── Store ───────────

class NotFound(EmbedVideoError):
    pass


class VideoNotFound(NotFound):
    def __init__(self, permlink: str):
        super().__init__(f"Video not found: {permlink}")
        self.permlink = permlink


class JobNotFound(NotFound):
    def __init__(self, owner: str, permlink: str):
        super().__init__(f"Job not found: {owner}/{permlink}")
        self.owner = owner
        self.permlink = permlink


class DuplicateRecord(EmbedVideoError):
    pass


class DuplicateVideo(DuplicateRecord):
    def __init__(self, permlink: str):
        super().__init__(f"Video already exists: {permlink}")
        self.permlink = permlink


class DuplicateJob(DuplicateRecord):
    def __init__(self, owner: str, permlink: str):
        super().__init__(f"Job already exists: {owner}/{permlink}")
        self.owner = owner
        self.permlink = permlink


class DuplicateApiKey(DuplicateRecord):
    pass


class InvalidTransition(EmbedVideoError):
    def __init__(self, permlink: str, current: str, target: str):
        super().__init__(f"Video {permlink} cannot move from {current} to {target}")
        self.permlink = permlink
        self.current = current
        self.target = target


# ─────────── Storage ───────────

class PinFailed(EmbedVideoError):
    def __init__(self, file_path: str, cause: Exception):
        super().__init__(f"Failed to pin file to IPFS: {cause}")
        self.file_path = file_path
        self.cause = cause


# ─────────── Dispatch ───────────

class DispatchError(EmbedVideoError):
    """Any failure that counts against a job's attempt budget."""


class MissingVideo(DispatchError):
    def __init__(self, permlink: str):
        super().__init__(f"Video not found: {permlink}")


class MissingInputCid(DispatchError):
    def __init__(self, permlink: str):
        super().__init__(f"Video has no input_cid: {permlink}")


class NoWorkersAvailable(DispatchError):
    def __init__(self):
        super().__init__("No enabled encoders available")


class WorkerRejected(DispatchError):
    def __init__(self, worker: str, detail: str):
        super().__init__(f"Encoder [{worker}] rejected job: {detail}")
        self.worker = worker


class WorkerTimeout(DispatchError):
    def __init__(self, worker: str, timeout: float):
        super().__init__(f"Encoder [{worker}] did not answer within {timeout:g}s")
        self.worker = worker


class WorkerUnavailable(DispatchError):
    def __init__(self, worker: str, cause: Exception):
        super().__init__(f"Encoder [{worker}] unreachable: {cause}")
        self.worker = worker


# ─────────── Inbound ───────────

class InvalidWebhookStatus(EmbedVideoError):
    def __init__(self, status):
        super().__init__(f"Unknown status: {status}")
        self.status = status
