from typing import Dict
from uuid import uuid4
from sqlalchemy import or_, update
from ..db.session import get_session
from ..models.subscription import Subscription
from .errors import QuotaExceededError
from .logging import log_event
from .plans import DEFAULT_PLAN, video_limit_for


class QuotaService:
    """Monthly video quota backed by the team's subscription row.

    ``reserve`` is one conditional UPDATE so that concurrent requests from the
    same team can never push ``videos_generated_this_month`` past the limit.
    """

    def __init__(self, session_factory=get_session):
        self._session_factory = session_factory

    def ensure_subscription(self, team_id: str) -> None:
        with self._session_factory() as session:
            existing = session.query(Subscription).filter(Subscription.team_id == team_id).first()
            if existing:
                return None
            session.add(
                Subscription(
                    id=str(uuid4()),
                    team_id=team_id,
                    plan_type=DEFAULT_PLAN,
                    video_limit=video_limit_for(DEFAULT_PLAN),
                    videos_generated_this_month=0,
                )
            )
            log_event("info", "subscription.created", team_id=team_id, plan_type=DEFAULT_PLAN)
        return None

    def check(self, team_id: str) -> Dict:
        self.ensure_subscription(team_id)
        with self._session_factory() as session:
            sub = session.query(Subscription).filter(Subscription.team_id == team_id).one()
            used = sub.videos_generated_this_month or 0
            limit = sub.video_limit
            return {
                "plan_type": sub.plan_type,
                "video_limit": limit,
                "videos_generated_this_month": used,
                "remaining": None if limit is None else max(0, limit - used),
                "allowed": limit is None or used < limit,
            }

    def reserve(self, team_id: str) -> None:
        """Consume one video from the quota or raise ``QuotaExceededError``."""
        self.ensure_subscription(team_id)
        with self._session_factory() as session:
            result = session.execute(
                update(Subscription)
                .where(
                    Subscription.team_id == team_id,
                    or_(
                        Subscription.video_limit.is_(None),
                        Subscription.videos_generated_this_month < Subscription.video_limit,
                    ),
                )
                .values(videos_generated_this_month=Subscription.videos_generated_this_month + 1)
                .execution_options(synchronize_session=False)
            )
            reserved = result.rowcount == 1
        if not reserved:
            usage = self.check(team_id)
            log_event(
                "warning",
                "quota.exceeded",
                team_id=team_id,
                used=usage["videos_generated_this_month"],
                limit=usage["video_limit"],
            )
            raise QuotaExceededError(usage["videos_generated_this_month"], usage["video_limit"])
        log_event("info", "quota.reserved", team_id=team_id)
        return None

    def release(self, team_id: str) -> None:
        """Give back one reserved video (dispatch never reached the provider)."""
        with self._session_factory() as session:
            session.execute(
                update(Subscription)
                .where(Subscription.team_id == team_id, Subscription.videos_generated_this_month > 0)
                .values(videos_generated_this_month=Subscription.videos_generated_this_month - 1)
                .execution_options(synchronize_session=False)
            )
        log_event("info", "quota.released", team_id=team_id)
        return None
