import os
from dataclasses import dataclass
from pathlib import Path
import json
from typing import Optional

from dotenv import load_dotenv


@dataclass
class AppConfig:
    database_url: str
    secret_key: str
    log_level: str
    public_base_url: str
    video_timeout_minutes: int
    signed_url_ttl_seconds: int

    def callback_url(self) -> str:
        base = self.public_base_url.rstrip("/")
        return f"{base}/api/videos/callback"

    def storage_url(self, token: str) -> str:
        base = self.public_base_url.rstrip("/")
        return f"{base}/api/storage/{token}"


def validate_positive(value: Optional[str], field: str, default: int) -> int:
    raw = (str(value).strip() if value is not None else "") or str(default)
    try:
        v = int(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid {field}: expected an integer") from exc
    if v <= 0:
        raise ValueError(f"Invalid {field}: must be > 0")
    return v


def _load_settings_file(path: Optional[Path] = None) -> dict:
    target = path or Path(os.getenv("REELSTUDIO_SETTINGS", "data/settings.json"))
    try:
        if target.exists():
            data = json.loads(target.read_text(encoding="utf-8"))
            if isinstance(data, dict):
                return data
    except (OSError, ValueError) as exc:
        print(f"[AppConfig] Error loading settings from {target}: {exc}")
    return {}


def load_env(settings_path: Optional[Path] = None) -> AppConfig:
    # data/settings.json takes priority, .env is the fallback
    load_dotenv()
    s = _load_settings_file(settings_path)
    database_url = os.getenv("DATABASE_URL", "sqlite:///data/reelstudio.db")
    secret_key = os.getenv("SECRET_KEY", "dev_secret")
    log_level = os.getenv("LOG_LEVEL", "INFO")
    public_base_url = (s.get("PUBLIC_BASE_URL") or os.getenv("PUBLIC_BASE_URL") or "http://127.0.0.1:5000").rstrip("/")
    timeout = validate_positive(
        s.get("VIDEO_TIMEOUT_MINUTES") or os.getenv("VIDEO_TIMEOUT_MINUTES"), "VIDEO_TIMEOUT_MINUTES", 10
    )
    ttl = validate_positive(
        s.get("SIGNED_URL_TTL_SECONDS") or os.getenv("SIGNED_URL_TTL_SECONDS"), "SIGNED_URL_TTL_SECONDS", 7200
    )
    return AppConfig(
        database_url=database_url,
        secret_key=secret_key,
        log_level=log_level,
        public_base_url=public_base_url,
        video_timeout_minutes=timeout,
        signed_url_ttl_seconds=ttl,
    )
