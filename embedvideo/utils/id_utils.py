# embedvideo/utils/id_utils.py
import re
import secrets

PERMLINK_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
PERMLINK_LENGTH = 8


def generate_permlink() -> str:
    """Random 8-char lowercase alphanumeric video id, e.g. yn77aj9g."""
    return "".join(secrets.choice(PERMLINK_ALPHABET) for _ in range(PERMLINK_LENGTH))


def generate_api_key(app_name: str) -> str:
    """sk_<appname>_<48 hex chars>"""
    sanitized = re.sub(r"[^a-z0-9]", "", app_name.lower())
    return f"sk_{sanitized}_{secrets.token_hex(24)}"


def mask_key(key: str) -> str:
    return f"{key[:10]}…" if len(key) > 10 else "…"
