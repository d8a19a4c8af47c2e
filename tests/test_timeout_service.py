from datetime import timedelta
from unittest import TestCase
from uuid import uuid4

from reelstudio.common.models import VideoRecord
from reelstudio.common.services.timeout_service import TimeoutService
from reelstudio.common.utils.clock import utcnow

from .helpers import add_team_image, app_config, memory_session_factory


class TimeoutServiceTests(TestCase):
    def setUp(self):
        self.session_factory = memory_session_factory()
        self.image_id = add_team_image(self.session_factory)
        self.service = TimeoutService(app_config(), self.session_factory)

    def _video(self, status, minutes_from_now):
        video_id = str(uuid4())
        now = utcnow()
        with self.session_factory() as session:
            session.add(
                VideoRecord(
                    id=video_id,
                    team_id="team-1",
                    image_id=self.image_id,
                    prompt="p",
                    kie_task_id=str(uuid4()),
                    status=status,
                    created_at=now,
                    updated_at=now,
                    timeout_at=now + timedelta(minutes=minutes_from_now),
                )
            )
        return video_id

    def _status(self, video_id):
        with self.session_factory() as session:
            row = session.get(VideoRecord, video_id)
            return row.status, row.error_message

    def test_only_overdue_active_records_fail(self):
        overdue_pending = self._video("pending", -1)
        overdue_processing = self._video("processing", -5)
        fresh = self._video("pending", 5)
        done = self._video("completed", -30)

        result = self.service.sweep()

        self.assertEqual(result["count"], 2)
        self.assertEqual(
            self._status(overdue_pending), ("failed", "Generation timed out after 10 minutes")
        )
        self.assertEqual(self._status(overdue_processing)[0], "failed")
        self.assertEqual(self._status(fresh)[0], "pending")
        self.assertEqual(self._status(done)[0], "completed")

    def test_sweep_is_idempotent(self):
        self._video("pending", -1)
        self.assertEqual(self.service.sweep()["count"], 1)
        self.assertEqual(self.service.sweep()["count"], 0)

    def test_overdue_merging_record_fails(self):
        stuck = self._video("merging", -2)

        result = self.service.sweep()

        self.assertEqual(result["videoIds"], [stuck])
        self.assertEqual(self._status(stuck), ("failed", "Generation timed out after 10 minutes"))
