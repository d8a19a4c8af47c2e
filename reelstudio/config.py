"""Reel Studio application settings."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from .common.config import AppConfig, load_env


@dataclass
class StudioConfig:
    """Process-level paths plus the environment-driven ``AppConfig``."""

    app: AppConfig
    root: Path

    @property
    def data_dir(self) -> Path:
        return self.root / "data"

    @property
    def storage_dir(self) -> Path:
        return self.data_dir / "storage"

    @property
    def settings_file(self) -> Path:
        return self.data_dir / "settings.json"

    @classmethod
    def load(cls, root: Path | None = None) -> "StudioConfig":
        """Build settings from the environment and make sure the data directories exist."""

        root = Path(root or os.environ.get("REELSTUDIO_HOME") or Path.cwd())
        settings_file = root / "data" / "settings.json"
        config = cls(app=load_env(settings_file), root=root)

        config.data_dir.mkdir(parents=True, exist_ok=True)
        config.storage_dir.mkdir(parents=True, exist_ok=True)

        # provider clients read their keys from here before the environment
        if not config.settings_file.exists():
            default_settings = {
                "KIE_API_KEY": "",
                "KIE_MODEL": "veo3_fast",
                "GEMINI_API_KEY": "",
                "GEMINI_LLM": "gemini-2.5-flash",
                "STRIPE_SECRET_KEY": "",
                "STRIPE_WEBHOOK_SECRET": "",
                "PUBLIC_BASE_URL": "",
                "VIDEO_TIMEOUT_MINUTES": "10",
            }
            config.settings_file.write_text(
                json.dumps(default_settings, indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
            print(f"[StudioConfig] created default settings file: {config.settings_file}")

        return config
