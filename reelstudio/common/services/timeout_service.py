from typing import Dict

from ..db.session import get_session
from ..models.video_record import VideoRecord
from ..utils.clock import utcnow
from .logging import log_event
from .video_state import ACTIVE_STATUSES, TIMED_OUT, transition


class TimeoutService:
    """Fails videos whose provider never called back before ``timeout_at``."""

    def __init__(self, config, session_factory=get_session):
        self._config = config
        self._session_factory = session_factory

    def sweep(self) -> Dict:
        now = utcnow()
        message = f"Generation timed out after {self._config.video_timeout_minutes} minutes"
        expired = []
        with self._session_factory() as session:
            rows = (
                session.query(VideoRecord)
                .filter(
                    VideoRecord.status.in_(ACTIVE_STATUSES),
                    VideoRecord.timeout_at.isnot(None),
                    VideoRecord.timeout_at < now,
                )
                .all()
            )
            for row in rows:
                row.status = transition(row.status, TIMED_OUT)
                row.error_message = message
                row.updated_at = now
                expired.append(row.id)
        log_event("info", "videos.timeout_sweep", count=len(expired))
        return {"success": True, "count": len(expired), "videoIds": expired}
