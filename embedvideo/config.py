# embedvideo/config.py
import json
import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EncoderConfig:
    name: str
    url: str
    api_key: str
    enabled: bool = True


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./embedvideo.db"
    redis_url: str = "redis://localhost:6379/0"
    upload_events_queue: str = "embedvideo_uploads"

    base_url: str = "https://play.3speak.tv/embed"
    demo_api_key: str = ""
    admin_password: str = "change-me-in-production"

    ipfs_api_url: str = "http://127.0.0.1:5001"
    ipfs_fallback_url: str = "http://65.21.201.94:5002"
    ipfs_gateway_url: str = "https://ipfs.3speak.tv/ipfs"
    pin_timeout_sec: float = 300.0

    encoders: tuple = field(default_factory=tuple)
    encoder_timeout_sec: float = 30.0
    webhook_url: str = ""
    webhook_api_key: str = ""

    dispatch_interval_sec: float = 30.0
    dispatch_batch_size: int = 5

    log_level: str = "INFO"


def parse_encoders(raw: str | None, legacy_url: str | None = None, legacy_key: str | None = None) -> tuple:
    """
    Parse the ENCODERS env var, a JSON array such as
    [{"name": "snapie", "url": "https://snapie.example", "apiKey": "k1", "enabled": true}].
    Falls back to a single "default" encoder from ENCODER_API_URL / ENCODER_API_KEY.
    """
    encoders = []
    if raw:
        try:
            for item in json.loads(raw):
                encoders.append(EncoderConfig(
                    name=item["name"],
                    url=item["url"].rstrip("/"),
                    api_key=item.get("apiKey") or item.get("api_key") or "",
                    enabled=bool(item.get("enabled", True)),
                ))
        except (ValueError, TypeError, KeyError) as e:
            logger.error("Failed to parse ENCODERS env variable: %s", e)
            encoders = []

    if not encoders and legacy_url and legacy_key:
        encoders.append(EncoderConfig(name="default", url=legacy_url.rstrip("/"), api_key=legacy_key))

    return tuple(encoders)


def load_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./embedvideo.db"),
        redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        upload_events_queue=os.getenv("UPLOAD_EVENTS_QUEUE", "embedvideo_uploads"),
        base_url=os.getenv("BASE_URL", "https://play.3speak.tv/embed"),
        demo_api_key=os.getenv("DEMO_API_KEY", ""),
        admin_password=os.getenv("ADMIN_PASSWORD", "change-me-in-production"),
        ipfs_api_url=os.getenv("IPFS_API_URL", "http://127.0.0.1:5001"),
        ipfs_fallback_url=os.getenv("IPFS_FALLBACK_URL", "http://65.21.201.94:5002"),
        ipfs_gateway_url=os.getenv("IPFS_GATEWAY_URL", "https://ipfs.3speak.tv/ipfs").rstrip("/"),
        pin_timeout_sec=float(os.getenv("PIN_TIMEOUT_SEC", "300")),
        encoders=parse_encoders(
            os.getenv("ENCODERS"),
            os.getenv("ENCODER_API_URL"),
            os.getenv("ENCODER_API_KEY"),
        ),
        encoder_timeout_sec=float(os.getenv("ENCODER_TIMEOUT_SEC", "30")),
        webhook_url=os.getenv("WEBHOOK_URL", ""),
        webhook_api_key=os.getenv("WEBHOOK_API_KEY", ""),
        dispatch_interval_sec=float(os.getenv("DISPATCH_INTERVAL_SEC", "30")),
        dispatch_batch_size=int(os.getenv("DISPATCH_BATCH_SIZE", "5")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


@lru_cache()
def get_settings() -> Settings:
    return load_settings()
