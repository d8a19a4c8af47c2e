from datetime import datetime, timedelta
from unittest import TestCase
from unittest.mock import Mock

from reelstudio.common.models import Subscription, VideoRecord
from reelstudio.common.services.errors import NotFoundError, ProviderError, QuotaExceededError
from reelstudio.common.services.quota_service import QuotaService
from reelstudio.common.services.storage_service import VIDEOS_BUCKET
from reelstudio.common.services.video_generation_service import (
    DEFAULT_PROMPT,
    FRAMES_MODE,
    REFERENCE_MODE,
    SEED_MAX,
    SEED_MIN,
    GenerationRequest,
    VideoGenerationService,
    resolve_seed,
)
from reelstudio.common.utils.clock import utcnow

from .helpers import add_team_image, app_config, memory_session_factory, temp_storage


class ResolveSeedTests(TestCase):
    def test_keeps_seed_in_range(self):
        self.assertEqual(resolve_seed(12345), 12345)

    def test_out_of_range_seed_is_replaced(self):
        for seed in (None, 42, 100000, "12345", True):
            value = resolve_seed(seed)
            self.assertTrue(SEED_MIN <= value <= SEED_MAX)


class GenerationRequestTests(TestCase):
    def test_defaults(self):
        req = GenerationRequest.from_payload({"imageId": "img-1"})
        self.assertEqual(req.aspect_ratio, "9:16")
        self.assertEqual(req.duration_seconds, 8)
        self.assertEqual(req.prompt, "")

    def test_rejects_unknown_ratio(self):
        with self.assertRaises(ValueError):
            GenerationRequest.from_payload({"imageId": "img-1", "aspectRatio": "4:3"})

    def test_rejects_missing_image(self):
        with self.assertRaises(ValueError):
            GenerationRequest.from_payload({"prompt": "hello"})

    def test_segment_prompt_count_must_match_duration(self):
        with self.assertRaises(ValueError):
            GenerationRequest.from_payload({"imageId": "img-1", "durationSeconds": 16, "segmentPrompts": ["only one"]})


class VideoGenerationServiceTests(TestCase):
    def setUp(self):
        self.session_factory = memory_session_factory()
        self.storage = temp_storage(self)
        self.quota = QuotaService(self.session_factory)
        self.provider = Mock()
        self.provider.generate_video.return_value = {"status": "processing", "task_id": "task-1", "message": None}
        self.assistant = Mock()
        self.assistant.is_enabled.return_value = True
        self.service = VideoGenerationService(
            provider=self.provider,
            storage=self.storage,
            quota=self.quota,
            config=app_config(),
            prompt_assistant=self.assistant,
            session_factory=self.session_factory,
        )
        self.image_id = add_team_image(self.session_factory)

    def _used(self):
        return self.quota.check("team-1")["videos_generated_this_month"]

    def test_single_segment_dispatch_creates_pending_record(self):
        before = utcnow()
        result = self.service.generate("team-1", GenerationRequest(image_id=self.image_id, prompt="a red shoe", seed=23456))

        self.assertEqual(result["status"], "pending")
        self.assertEqual(result["kieTaskId"], "task-1")
        self.assertEqual(result["estimatedTimeSeconds"], 120)
        kwargs = self.provider.generate_video.call_args.kwargs
        self.assertEqual(kwargs["generation_type"], FRAMES_MODE)
        self.assertEqual(kwargs["aspect_ratio"], "9:16")
        self.assertEqual(kwargs["seed"], 23456)
        self.assertEqual(kwargs["callback_url"], "https://studio.test/api/videos/callback")
        self.assertEqual(len(kwargs["image_urls"]), 1)
        self.assertTrue(kwargs["image_urls"][0].startswith("/api/storage/"))
        self.assertFalse(self.assistant.generate_segment_prompts.called)

        video = self.service.get_video("team-1", result["videoId"])
        self.assertEqual(video["status"], "pending")
        self.assertEqual(video["current_segment"], 1)
        self.assertEqual(video["segment_prompts"], ["a red shoe"])
        self.assertEqual(video["kie_task_id"], "task-1")
        timeout_at = datetime.fromisoformat(video["timeout_at"])
        self.assertGreaterEqual(timeout_at, before + timedelta(minutes=9))
        self.assertEqual(self._used(), 1)

    def test_blank_prompt_uses_default(self):
        self.service.generate("team-1", GenerationRequest(image_id=self.image_id, prompt=""))
        self.assertEqual(self.provider.generate_video.call_args.kwargs["prompt"], DEFAULT_PROMPT)

    def test_quota_rejection_never_calls_provider(self):
        with self.session_factory() as session:
            session.add(Subscription(id="s-1", team_id="team-1", plan_type="free", video_limit=6, videos_generated_this_month=6))
        with self.assertRaises(QuotaExceededError):
            self.service.generate("team-1", GenerationRequest(image_id=self.image_id))
        self.assertFalse(self.provider.generate_video.called)
        with self.session_factory() as session:
            self.assertEqual(session.query(VideoRecord).count(), 0)

    def test_logo_switches_to_reference_mode_and_widens_ratio(self):
        result = self.service.generate(
            "team-1",
            GenerationRequest(image_id=self.image_id, aspect_ratio="9:16", logo_url="team-1/logo.png"),
        )
        kwargs = self.provider.generate_video.call_args.kwargs
        self.assertEqual(kwargs["generation_type"], REFERENCE_MODE)
        self.assertEqual(kwargs["aspect_ratio"], "16:9")
        self.assertEqual(len(kwargs["image_urls"]), 2)
        video = self.service.get_video("team-1", result["videoId"])
        self.assertTrue(video["was_cropped"])
        self.assertEqual(video["aspect_ratio"], "9:16")
        self.assertEqual(video["generation_type"], REFERENCE_MODE)

    def test_wide_reference_video_is_not_cropped(self):
        result = self.service.generate(
            "team-1",
            GenerationRequest(image_id=self.image_id, aspect_ratio="16:9", additional_image_url="team-1/extra.png"),
        )
        self.assertEqual(self.provider.generate_video.call_args.kwargs["aspect_ratio"], "16:9")
        self.assertFalse(self.service.get_video("team-1", result["videoId"])["was_cropped"])

    def test_multi_segment_uses_prompt_assistant(self):
        self.assistant.generate_segment_prompts.return_value = ["one", "two", "three"]
        result = self.service.generate("team-1", GenerationRequest(image_id=self.image_id, prompt="story", duration_seconds=24))
        self.assertEqual(result["estimatedTimeSeconds"], 360)
        video = self.service.get_video("team-1", result["videoId"])
        self.assertEqual(video["segment_prompts"], ["one", "two", "three"])
        self.assertEqual(video["target_duration_seconds"], 24)

    def test_prompt_assistant_failure_repeats_prompt(self):
        self.assistant.generate_segment_prompts.side_effect = ValueError("Invalid number of prompts")
        result = self.service.generate("team-1", GenerationRequest(image_id=self.image_id, prompt="story", duration_seconds=16))
        self.assertEqual(self.service.get_video("team-1", result["videoId"])["segment_prompts"], ["story", "story"])

    def test_caller_segment_prompts_take_priority(self):
        result = self.service.generate(
            "team-1",
            GenerationRequest(image_id=self.image_id, prompt="story", duration_seconds=16, segment_prompts=["a", "b"]),
        )
        self.assertFalse(self.assistant.generate_segment_prompts.called)
        self.assertEqual(self.service.get_video("team-1", result["videoId"])["segment_prompts"], ["a", "b"])

    def test_provider_error_releases_quota_and_creates_nothing(self):
        self.provider.generate_video.return_value = {"status": "error", "task_id": None, "message": "bad image url"}
        with self.assertRaises(ProviderError) as ctx:
            self.service.generate("team-1", GenerationRequest(image_id=self.image_id))
        self.assertEqual(ctx.exception.details, "bad image url")
        self.assertEqual(self._used(), 0)
        with self.session_factory() as session:
            self.assertEqual(session.query(VideoRecord).count(), 0)

    def test_unknown_image_is_not_found(self):
        with self.assertRaises(NotFoundError):
            self.service.generate("team-1", GenerationRequest(image_id="missing"))
        self.assertEqual(self._used(), 0)

    def test_regenerate_uses_same_parameters_and_new_seed(self):
        first = self.service.generate(
            "team-1",
            GenerationRequest(image_id=self.image_id, prompt="shoe", seed=11111, logo_url="team-1/logo.png"),
        )
        self.provider.generate_video.return_value = {"status": "processing", "task_id": "task-2", "message": None}
        second = self.service.regenerate("team-1", first["videoId"])
        self.assertNotEqual(first["videoId"], second["videoId"])
        kwargs = self.provider.generate_video.call_args.kwargs
        self.assertEqual(kwargs["prompt"], "shoe")
        self.assertEqual(kwargs["generation_type"], REFERENCE_MODE)
        self.assertNotEqual(kwargs["seed"], 11111)
        self.assertEqual(self._used(), 2)

    def test_list_and_delete(self):
        result = self.service.generate("team-1", GenerationRequest(image_id=self.image_id))
        self.storage.upload(VIDEOS_BUCKET, f"team-1/{result['videoId']}.mp4", b"mp4")
        listing = self.service.list_videos("team-1")
        self.assertEqual(listing["total"], 1)
        self.assertEqual(self.service.list_videos("team-2")["total"], 0)

        self.service.delete_video("team-1", result["videoId"])
        self.assertFalse(self.storage.exists(VIDEOS_BUCKET, f"team-1/{result['videoId']}.mp4"))
        with self.assertRaises(NotFoundError):
            self.service.get_video("team-1", result["videoId"])

    def test_other_team_cannot_read_video(self):
        result = self.service.generate("team-1", GenerationRequest(image_id=self.image_id))
        with self.assertRaises(NotFoundError):
            self.service.get_video("team-2", result["videoId"])
