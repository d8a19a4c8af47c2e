from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, func
from .base import Base


class Subscription(Base):
    """Per-team plan state; ``video_limit`` NULL means unlimited."""
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, unique=True)
    plan_type = Column(String(32), nullable=False, default="free")
    video_limit = Column(Integer, nullable=True, default=6)
    videos_generated_this_month = Column(Integer, nullable=False, default=0)
    stripe_customer_id = Column(String(128), nullable=True)
    stripe_subscription_id = Column(String(128), nullable=True, index=True)
    stripe_price_id = Column(String(128), nullable=True)
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    pending_plan_change = Column(String(32), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
