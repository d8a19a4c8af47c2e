"""
Provider webhook handling for segmented videos.

Each finished segment arrives as one callback. While segments remain the
segment is checkpointed and the provider task is extended with the next
prompt; the last callback stores the final asset and completes the record.
Every outcome is written to the record; nothing is raised to the caller.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..db.session import get_session
from ..models.video_record import VideoRecord
from ..utils.clock import utcnow
from .logging import log_event
from .storage_service import VIDEOS_BUCKET, ObjectStorage, StorageError
from .video_state import (
    ARTIFACT_STORED,
    DOWNLOAD_FAILED,
    EXTEND_FAILED,
    LAST_SEGMENT_CAPTURED,
    MERGING,
    SEGMENT_EXTENDED,
    SEGMENT_FAILED,
    STORAGE_FAILED,
    is_terminal,
    segments_needed,
    transition,
)


@dataclass(frozen=True)
class CallbackPayload:
    code: int
    msg: Optional[str]
    task_id: str
    result_urls: List[str]

    @classmethod
    def parse(cls, body: Any) -> "CallbackPayload":
        if not isinstance(body, dict):
            raise ValueError("Callback body must be a JSON object")
        data = body.get("data")
        if not isinstance(data, dict):
            raise ValueError("Callback has no data")
        task_id = data.get("taskId")
        if not task_id:
            raise ValueError("No taskId")
        code = body.get("code")
        if isinstance(code, bool) or not isinstance(code, int):
            raise ValueError("Callback code must be an integer")
        info = data.get("info") if isinstance(data.get("info"), dict) else {}
        urls = info.get("resultUrls") or []
        if not isinstance(urls, list):
            raise ValueError("resultUrls must be a list")
        msg = body.get("msg")
        return cls(
            code=code,
            msg=str(msg) if msg else None,
            task_id=str(task_id),
            result_urls=[str(u) for u in urls if u],
        )


def segment_path(team_id: str, video_id: str, segment: int) -> str:
    return f"{team_id}/{video_id}_segment_{segment}.mp4"


def final_path(team_id: str, video_id: str) -> str:
    return f"{team_id}/{video_id}.mp4"


class VideoCallbackService:
    def __init__(self, *, provider, storage: ObjectStorage, config, session_factory=get_session):
        self._provider = provider
        self._storage = storage
        self._config = config
        self._session_factory = session_factory

    def handle(self, payload: CallbackPayload) -> Tuple[Dict[str, Any], int]:
        """Apply one provider callback; returns ``(body, http_status)``."""
        video = self._load(payload.task_id)
        if video is None:
            log_event("warning", "callback.unknown_task", task_id=payload.task_id)
            return {"error": "Video not found"}, 404

        # merging means the last segment is already being stored
        if is_terminal(video["status"]) or video["status"] == MERGING:
            log_event("info", "callback.ignored", video_id=video["id"], status=video["status"])
            return {"success": True, "ignored": True, "status": video["status"]}, 200

        try:
            return self._apply(video, payload)
        except Exception as exc:
            message = f"Callback processing error: {type(exc).__name__}: {exc}"
            log_event("error", "callback.unexpected_error", video_id=video["id"], error=message)
            try:
                self._fail(video, SEGMENT_FAILED, message)
            except Exception as fail_exc:
                log_event("error", "callback.fail_not_recorded", video_id=video["id"], error=str(fail_exc))
            return {"error": "Callback processing failed"}, 500

    def _apply(self, video: Dict, payload: CallbackPayload) -> Tuple[Dict[str, Any], int]:
        if payload.code != 200:
            message = payload.msg or f"Provider error code {payload.code}"
            self._fail(video, SEGMENT_FAILED, message)
            return {"success": True, "status": "failed"}, 200

        if not payload.result_urls:
            self._fail(video, SEGMENT_FAILED, "No result URL received from the provider")
            return {"error": "No result URLs"}, 400

        downloaded = self._provider.download_video(payload.result_urls[0])
        if downloaded.get("status") != "ok":
            self._fail(video, DOWNLOAD_FAILED, downloaded.get("message") or "Video download failed")
            return {"error": "Download failed"}, 500

        total = segments_needed(video["target_duration_seconds"])
        current = video["current_segment"] or 1
        if current < total:
            return self._continue(video, downloaded["content"], current, total)
        return self._finalize(video, downloaded["content"], total)

    def _continue(self, video: Dict, content: bytes, current: int, total: int) -> Tuple[Dict[str, Any], int]:
        try:
            self._storage.upload(VIDEOS_BUCKET, segment_path(video["team_id"], video["id"], current), content)
        except StorageError as exc:
            self._fail(video, STORAGE_FAILED, f"Upload error: {exc}")
            return {"error": "Upload failed"}, 500

        prompts = video["segment_prompts"] or [video["prompt"]]
        # segment_prompts is zero-based, so index ``current`` is the next segment
        if current < len(prompts):
            next_prompt = prompts[current]
        else:
            next_prompt = prompts[-1]
            log_event(
                "warning",
                "callback.segment_prompt_missing",
                video_id=video["id"],
                segment=current + 1,
                prompts=len(prompts),
            )
        result = self._provider.extend_video(
            task_id=video["kie_task_id"],
            prompt=next_prompt,
            seed=video["seed"],
            callback_url=self._config.callback_url(),
        )
        if result.get("status") == "error" or not result.get("task_id"):
            self._fail(video, EXTEND_FAILED, f"Extend error: {result.get('message') or 'no taskId returned'}")
            return {"error": "Extend failed"}, 500

        with self._session_factory() as session:
            row = session.get(VideoRecord, video["id"])
            row.status = transition(row.status, SEGMENT_EXTENDED)
            row.kie_task_id = result["task_id"]
            row.current_segment = current + 1
            row.updated_at = utcnow()
        log_event(
            "info",
            "callback.segment_extended",
            video_id=video["id"],
            segment=current + 1,
            segments=total,
            task_id=result["task_id"],
        )
        return {"success": True, "extended": True}, 200

    def _finalize(self, video: Dict, content: bytes, total: int) -> Tuple[Dict[str, Any], int]:
        self._set_status(video["id"], LAST_SEGMENT_CAPTURED)
        path = final_path(video["team_id"], video["id"])
        try:
            self._storage.upload(VIDEOS_BUCKET, path, content, upsert=True)
        except StorageError as exc:
            self._fail(video, STORAGE_FAILED, f"Upload error: {exc}")
            return {"error": "Upload failed"}, 500

        if total > 1:
            checkpoints = [segment_path(video["team_id"], video["id"], n) for n in range(1, total + 1)]
            try:
                self._storage.remove(VIDEOS_BUCKET, checkpoints)
            except StorageError as exc:
                log_event("warning", "callback.checkpoint_cleanup_failed", video_id=video["id"], error=str(exc))

        now = utcnow()
        with self._session_factory() as session:
            row = session.get(VideoRecord, video["id"])
            row.status = transition(row.status, ARTIFACT_STORED)
            row.video_url = path
            row.completed_at = now
            row.updated_at = now
        log_event("info", "callback.completed", video_id=video["id"], segments=total, path=path)
        return {"success": True, "status": "completed"}, 200

    def _load(self, task_id: str) -> Optional[Dict]:
        with self._session_factory() as session:
            row = session.query(VideoRecord).filter(VideoRecord.kie_task_id == task_id).first()
            return row.to_dict() if row is not None else None

    def _set_status(self, video_id: str, event: str) -> None:
        with self._session_factory() as session:
            row = session.get(VideoRecord, video_id)
            row.status = transition(row.status, event)
            row.updated_at = utcnow()

    def _fail(self, video: Dict, event: str, message: str) -> None:
        with self._session_factory() as session:
            row = session.get(VideoRecord, video["id"])
            if is_terminal(row.status):
                return
            row.status = transition(row.status, event)
            row.error_message = message
            row.updated_at = utcnow()
        log_event("error", "callback.failed", video_id=video["id"], reason=event, message=message)
