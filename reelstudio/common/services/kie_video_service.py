"""
Kie.ai Veo video generation service
Generation: POST /api/v1/veo/generate, continuation: POST /api/v1/veo/extend
Results are delivered asynchronously to the callback URL passed with each call.
Authentication uses a Bearer API key.
"""
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from .logging import log_event


class KieVideoService:
    """
    Kie.ai Veo API integration:
    - turns an image and a prompt into an 8 second segment
    - continues the same task with ``extend`` for the next segment
    - downloads finished assets
    """

    API_BASE_URL = "https://api.kie.ai"
    DEFAULT_MODEL = "veo3_fast"
    SUPPORTED_VIDEO_MODELS = {
        "veo3": "Veo 3 Quality",
        "veo3_fast": "Veo 3 Fast",
    }
    REQUEST_TIMEOUT = 60
    DOWNLOAD_TIMEOUT = 120

    def __init__(self, settings_json_path: Optional[str] = None, http=None) -> None:
        self.logger = logging.getLogger(__name__)
        self._http = http or requests.Session()

        self.api_key: Optional[str] = None
        self.model: str = self.DEFAULT_MODEL
        self.base_url: str = self.API_BASE_URL

        # Settings tracking for hot-reload
        self._settings_path: Optional[str] = settings_json_path
        self._settings_mtime: Optional[float] = None

        self._load_settings(settings_json_path)

    def _load_settings(self, settings_json_path: Optional[str] = None) -> None:
        """
        Loads settings from a JSON file and falls back to environment variables.
        """
        settings: Dict[str, Any] = {}
        path_to_load = Path(settings_json_path) if settings_json_path else None

        if path_to_load and path_to_load.exists():
            try:
                self._settings_mtime = path_to_load.stat().st_mtime
                settings = json.loads(path_to_load.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                self.logger.warning("Error loading settings from %s: %s", path_to_load, e)
                settings = {}

        self.api_key = settings.get("KIE_API_KEY") or os.getenv("KIE_API_KEY")
        self.model = settings.get("KIE_MODEL") or os.getenv("KIE_MODEL") or self.DEFAULT_MODEL
        self.base_url = (settings.get("KIE_API_BASE_URL") or os.getenv("KIE_API_BASE_URL") or self.API_BASE_URL).rstrip("/")

        if self.model not in self.SUPPORTED_VIDEO_MODELS:
            self.logger.warning("Unknown Kie model %s, falling back to %s", self.model, self.DEFAULT_MODEL)
            self.model = self.DEFAULT_MODEL
        if not self.api_key:
            self.logger.warning("No Kie API key found in settings or environment")

    def _reload_settings_if_changed(self) -> None:
        """Hot-reload settings if file has changed"""
        if not self._settings_path:
            return
        path = Path(self._settings_path)
        try:
            mtime = path.stat().st_mtime
        except OSError:
            return
        if self._settings_mtime and mtime <= self._settings_mtime:
            return
        old_key, old_model = self.api_key, self.model
        self._load_settings(self._settings_path)
        if (self.api_key != old_key) or (self.model != old_model):
            log_event("info", "kie.settings_reloaded", model=self.model)

    def is_enabled(self) -> bool:
        return bool(self.api_key)

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    @staticmethod
    def _extract_task_id(result: Any) -> Optional[str]:
        if not isinstance(result, dict):
            return None
        data = result.get("data") if isinstance(result.get("data"), dict) else {}
        task_id = result.get("taskId") or data.get("taskId")
        return str(task_id) if task_id else None

    def _post(self, endpoint: str, payload: Dict[str, Any], action: str) -> Dict[str, Optional[str]]:
        self._reload_settings_if_changed()
        if not self.api_key:
            return {"status": "error", "task_id": None, "message": "Kie API key not configured"}

        url = f"{self.base_url}{endpoint}"
        try:
            response = self._http.post(url, headers=self._get_headers(), json=payload, timeout=self.REQUEST_TIMEOUT)
        except requests.exceptions.Timeout:
            log_event("error", f"kie.{action}_timeout")
            return {"status": "error", "task_id": None, "message": "Kie API request timed out"}
        except requests.exceptions.RequestException as exc:
            log_event("error", f"kie.{action}_failed", error=str(exc))
            return {"status": "error", "task_id": None, "message": f"{type(exc).__name__}: {exc}"}

        if not response.ok:
            # provider text is surfaced verbatim to the caller
            error_text = response.text
            log_event("error", f"kie.{action}_rejected", http_status=response.status_code, body=error_text[:500])
            return {"status": "error", "task_id": None, "message": error_text or f"HTTP {response.status_code}"}

        try:
            result = response.json()
        except ValueError:
            return {"status": "error", "task_id": None, "message": "Invalid JSON from Kie API"}

        task_id = self._extract_task_id(result)
        if not task_id:
            log_event("error", f"kie.{action}_no_task_id", response=result)
            return {"status": "error", "task_id": None, "message": f"No taskId in Kie {action} response"}

        log_event("info", f"kie.{action}_accepted", task_id=task_id)
        return {"status": "processing", "task_id": task_id, "message": None}

    def generate_video(
        self,
        *,
        prompt: str,
        image_urls: List[str],
        aspect_ratio: str,
        callback_url: str,
        seed: int,
        generation_type: str = "FIRST_AND_LAST_FRAMES_2_VIDEO",
    ) -> Dict[str, Optional[str]]:
        """
        Start the first segment of a video.

        Returns:
            Dict with status ("processing" or "error"), task_id and message
        """
        payload = {
            "prompt": prompt,
            "generationType": generation_type,
            "imageUrls": image_urls,
            "aspectRatio": aspect_ratio,
            "callBackUrl": callback_url,
            "model": self.model,
            "seeds": [seed],
        }
        self.logger.info(
            "Calling Kie generate (type=%s, images=%d, ratio=%s)", generation_type, len(image_urls), aspect_ratio
        )
        return self._post("/api/v1/veo/generate", payload, "generate")

    def extend_video(
        self,
        *,
        task_id: str,
        prompt: str,
        seed: Optional[int],
        callback_url: str,
    ) -> Dict[str, Optional[str]]:
        """Continue ``task_id`` with the next segment prompt; returns the new task id."""
        payload = {
            "taskId": task_id,
            "prompt": prompt,
            "seeds": seed,
            "watermark": "",
            "callBackUrl": callback_url,
        }
        return self._post("/api/v1/veo/extend", payload, "extend")

    def download_video(self, url: str) -> Dict[str, Any]:
        """Fetch a finished asset; returns status "ok" with ``content`` bytes or "error"."""
        try:
            response = self._http.get(url, timeout=self.DOWNLOAD_TIMEOUT)
        except requests.exceptions.RequestException as exc:
            log_event("error", "kie.download_failed", url=url, error=str(exc))
            return {"status": "error", "content": None, "message": f"Video download failed: {exc}"}
        if response.status_code != 200:
            log_event("error", "kie.download_failed", url=url, http_status=response.status_code)
            return {"status": "error", "content": None, "message": f"Video download failed: HTTP {response.status_code}"}
        return {"status": "ok", "content": response.content, "message": None}
