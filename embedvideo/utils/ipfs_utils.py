# embedvideo/utils/ipfs_utils.py
import json
import logging
import os

import requests

from ..config import get_settings
from ..errors import PinFailed

logger = logging.getLogger(__name__)


def add_to_ipfs(api_url: str, file_path: str, timeout: float) -> str:
    """POST the file to an IPFS HTTP API's add endpoint with pin=true and return its CID."""
    url = f"{api_url.rstrip('/')}/api/v0/add"
    with open(file_path, "rb") as fh:
        resp = requests.post(
            url,
            params={"pin": "true"},
            files={"file": (os.path.basename(file_path), fh)},
            timeout=timeout,
        )

    if resp.status_code != 200:
        raise RuntimeError(f"IPFS API error: {resp.status_code} {resp.reason} - {resp.text[:200]}")

    # add streams one JSON object per line; the last one is the file itself
    lines = [line for line in resp.text.strip().splitlines() if line.strip()]
    if not lines:
        raise RuntimeError("IPFS API returned an empty response")
    try:
        return json.loads(lines[-1])["Hash"]
    except (ValueError, KeyError, TypeError) as e:
        raise RuntimeError(f"Failed to parse IPFS response: {e}") from e


def pin_file(
    file_path: str,
    api_url: str | None = None,
    fallback_url: str | None = None,
    timeout: float | None = None,
) -> str:
    """
    Pin a local file, trying the local daemon first and the supernode second.
    Raises PinFailed carrying the last underlying error.
    """
    settings = get_settings()
    api_url = api_url or settings.ipfs_api_url
    fallback_url = fallback_url or settings.ipfs_fallback_url
    timeout = timeout or settings.pin_timeout_sec

    try:
        logger.info("Pinning %s to local IPFS daemon %s", file_path, api_url)
        cid = add_to_ipfs(api_url, file_path, timeout)
        logger.info("Pinned to local daemon: %s", cid)
        return cid
    except (requests.RequestException, RuntimeError, OSError) as local_error:
        logger.warning("Local IPFS daemon failed: %s", local_error)
        last_error = local_error

    if fallback_url:
        try:
            logger.info("Falling back to supernode: %s", fallback_url)
            cid = add_to_ipfs(fallback_url, file_path, timeout)
            logger.info("Pinned to supernode: %s", cid)
            return cid
        except (requests.RequestException, RuntimeError, OSError) as supernode_error:
            logger.error("Supernode IPFS failed: %s", supernode_error)
            last_error = supernode_error

    raise PinFailed(file_path, last_error)
