import random
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional
from uuid import uuid4

from ..db.session import get_session
from ..models.team import TeamImage
from ..models.video_record import VideoRecord
from ..utils.clock import utcnow
from ..utils.pagination import normalize_paging
from ..utils.validators import ensure_positive_int, optional_str
from .errors import NotFoundError, ProviderError
from .logging import log_event
from .quota_service import QuotaService
from .storage_service import IMAGES_BUCKET, VIDEOS_BUCKET, ObjectStorage, StorageError
from .video_state import PENDING, segments_needed

DEFAULT_PROMPT = "Generate a fun, very dynamic video that follows Instagram's codes"
SEED_MIN = 10000
SEED_MAX = 99999
NARROW_RATIO = "9:16"
WIDE_RATIO = "16:9"
SUPPORTED_RATIOS = (NARROW_RATIO, WIDE_RATIO)
MAX_DURATION_SECONDS = 64
SECONDS_PER_SEGMENT_ESTIMATE = 120

FRAMES_MODE = "FIRST_AND_LAST_FRAMES_2_VIDEO"
REFERENCE_MODE = "REFERENCE_2_VIDEO"


def resolve_seed(seed: Any = None) -> int:
    """Keep a caller seed inside the provider range, otherwise draw a new one."""
    if isinstance(seed, int) and not isinstance(seed, bool) and SEED_MIN <= seed <= SEED_MAX:
        return seed
    return random.randint(SEED_MIN, SEED_MAX)


@dataclass
class GenerationRequest:
    image_id: str
    prompt: str = ""
    aspect_ratio: str = NARROW_RATIO
    duration_seconds: int = 8
    seed: Optional[int] = None
    logo_url: Optional[str] = None
    additional_image_url: Optional[str] = None
    segment_prompts: Optional[List[str]] = field(default=None)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "GenerationRequest":
        image_id = optional_str(payload.get("imageId"))
        if not image_id:
            raise ValueError("imageId is required")
        aspect_ratio = payload.get("aspectRatio") or NARROW_RATIO
        if aspect_ratio not in SUPPORTED_RATIOS:
            raise ValueError(f"aspectRatio must be one of {', '.join(SUPPORTED_RATIOS)}")
        duration = ensure_positive_int(payload.get("durationSeconds", 8), "durationSeconds", MAX_DURATION_SECONDS)
        seed = payload.get("seed")
        if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int)):
            raise ValueError("seed must be an integer")
        prompts = payload.get("segmentPrompts")
        if prompts is not None:
            if not isinstance(prompts, list) or not all(isinstance(p, str) and p.strip() for p in prompts):
                raise ValueError("segmentPrompts must be a list of non-empty strings")
            if len(prompts) != segments_needed(duration):
                raise ValueError(
                    f"segmentPrompts must contain {segments_needed(duration)} prompts for {duration}s"
                )
        return cls(
            image_id=image_id,
            prompt=(payload.get("prompt") or "").strip(),
            aspect_ratio=aspect_ratio,
            duration_seconds=duration,
            seed=seed,
            logo_url=optional_str(payload.get("logoUrl")),
            additional_image_url=optional_str(payload.get("additionalImageUrl")),
            segment_prompts=prompts,
        )


class VideoGenerationService:
    """Dispatches the first segment of a video and owns the team's video records."""

    def __init__(
        self,
        *,
        provider,
        storage: ObjectStorage,
        quota: QuotaService,
        config,
        prompt_assistant=None,
        session_factory=get_session,
    ):
        self._provider = provider
        self._storage = storage
        self._quota = quota
        self._config = config
        self._prompt_assistant = prompt_assistant
        self._session_factory = session_factory

    def generate(self, team_id: str, request: GenerationRequest) -> Dict:
        image_path = self._image_storage_path(team_id, request.image_id)

        # raises QuotaExceededError before anything reaches the provider
        self._quota.reserve(team_id)
        try:
            params = self._build_provider_params(team_id, image_path, request)
            result = self._provider.generate_video(**params["call"])
        except Exception:
            self._quota.release(team_id)
            raise
        if result.get("status") == "error":
            self._quota.release(team_id)
            log_event("error", "video.dispatch_failed", team_id=team_id, message=result.get("message"))
            raise ProviderError("Video provider error", details=result.get("message"))

        task_id = result["task_id"]
        segments = segments_needed(request.duration_seconds)
        now = utcnow()
        video_id = str(uuid4())
        with self._session_factory() as session:
            session.add(
                VideoRecord(
                    id=video_id,
                    team_id=team_id,
                    image_id=request.image_id,
                    prompt=params["prompt"],
                    aspect_ratio=request.aspect_ratio,
                    duration_seconds=request.duration_seconds,
                    target_duration_seconds=request.duration_seconds,
                    current_segment=1,
                    segment_prompts=params["segment_prompts"],
                    kie_task_id=task_id,
                    generation_type=params["call"]["generation_type"],
                    status=PENDING,
                    seed=params["call"]["seed"],
                    logo_url=request.logo_url,
                    additional_image_url=request.additional_image_url,
                    was_cropped=params["was_cropped"],
                    created_at=now,
                    updated_at=now,
                    timeout_at=now + timedelta(minutes=self._config.video_timeout_minutes * segments),
                )
            )
        log_event(
            "info",
            "video.dispatched",
            video_id=video_id,
            team_id=team_id,
            task_id=task_id,
            segments=segments,
            generation_type=params["call"]["generation_type"],
        )
        return {
            "videoId": video_id,
            "kieTaskId": task_id,
            "status": PENDING,
            "estimatedTimeSeconds": SECONDS_PER_SEGMENT_ESTIMATE * segments,
        }

    def regenerate(self, team_id: str, video_id: str) -> Dict:
        """Dispatch the same video again with a fresh seed."""
        video = self.get_video(team_id, video_id)
        seed = resolve_seed()
        while seed == video.get("seed"):
            seed = resolve_seed()
        request = GenerationRequest(
            image_id=video["image_id"],
            prompt=video["prompt"],
            aspect_ratio=video["aspect_ratio"],
            duration_seconds=video["target_duration_seconds"] or video["duration_seconds"],
            seed=seed,
            logo_url=video["logo_url"],
            additional_image_url=video["additional_image_url"],
            segment_prompts=video["segment_prompts"] or None,
        )
        return self.generate(team_id, request)

    def get_video(self, team_id: str, video_id: str) -> Dict:
        with self._session_factory() as session:
            row = (
                session.query(VideoRecord)
                .filter(VideoRecord.id == video_id, VideoRecord.team_id == team_id)
                .first()
            )
            if row is None:
                raise NotFoundError("Video not found")
            return row.to_dict()

    def list_videos(self, team_id: str, page: int = 1, page_size: int = 20) -> Dict:
        p, ps, offset = normalize_paging(page, page_size)
        with self._session_factory() as session:
            q = session.query(VideoRecord).filter(VideoRecord.team_id == team_id)
            total = q.count()
            rows = q.order_by(VideoRecord.created_at.desc()).offset(offset).limit(ps).all()
            return {"items": [r.to_dict() for r in rows], "page": p, "page_size": ps, "total": total}

    def delete_video(self, team_id: str, video_id: str) -> None:
        with self._session_factory() as session:
            row = (
                session.query(VideoRecord)
                .filter(VideoRecord.id == video_id, VideoRecord.team_id == team_id)
                .first()
            )
            if row is None:
                raise NotFoundError("Video not found")
            paths = [f"{team_id}/{video_id}.mp4"]
            paths += [
                f"{team_id}/{video_id}_segment_{i}.mp4"
                for i in range(1, segments_needed(row.target_duration_seconds) + 1)
            ]
            session.delete(row)
        try:
            self._storage.remove(VIDEOS_BUCKET, paths)
        except StorageError as exc:
            log_event("warning", "video.delete_assets_failed", video_id=video_id, error=str(exc))
        log_event("info", "video.deleted", video_id=video_id, team_id=team_id)
        return None

    def _image_storage_path(self, team_id: str, image_id: str) -> str:
        with self._session_factory() as session:
            image = (
                session.query(TeamImage)
                .filter(TeamImage.id == image_id, TeamImage.team_id == team_id)
                .first()
            )
            if image is None:
                raise NotFoundError("Image not found")
            return image.storage_path

    def _sign(self, path: str) -> str:
        return self._storage.create_signed_url(IMAGES_BUCKET, path, self._config.signed_url_ttl_seconds)

    def _build_provider_params(self, team_id: str, image_path: str, request: GenerationRequest) -> Dict:
        prompt = request.prompt or DEFAULT_PROMPT
        generation_type = FRAMES_MODE
        image_urls = [self._sign(image_path)]
        aspect_ratio = request.aspect_ratio
        was_cropped = False

        if request.logo_url or request.additional_image_url:
            generation_type = REFERENCE_MODE
            for extra in (request.logo_url, request.additional_image_url):
                if extra:
                    image_urls.append(self._sign(extra))
            # reference mode has no narrow output: render wide, crop afterwards
            if aspect_ratio == NARROW_RATIO:
                aspect_ratio = WIDE_RATIO
                was_cropped = True

        return {
            "prompt": prompt,
            "segment_prompts": self._segment_prompts(team_id, prompt, request),
            "was_cropped": was_cropped,
            "call": {
                "prompt": prompt,
                "image_urls": image_urls,
                "aspect_ratio": aspect_ratio,
                "callback_url": self._config.callback_url(),
                "seed": resolve_seed(request.seed),
                "generation_type": generation_type,
            },
        }

    def _segment_prompts(self, team_id: str, prompt: str, request: GenerationRequest) -> List[str]:
        if request.segment_prompts:
            return list(request.segment_prompts)
        count = segments_needed(request.duration_seconds)
        if count == 1:
            return [prompt]
        if self._prompt_assistant is not None and self._prompt_assistant.is_enabled():
            try:
                return self._prompt_assistant.generate_segment_prompts(prompt, request.duration_seconds)
            except Exception as exc:
                log_event(
                    "warning",
                    "video.segment_prompts_fallback",
                    team_id=team_id,
                    error=f"{type(exc).__name__}: {exc}",
                )
        return [prompt] * count
