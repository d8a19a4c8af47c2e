"""Video generation record: one requested video and its segment chain."""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.sql import func
from .base import Base


class VideoRecord(Base):
    """Tracks a video from dispatch through the provider callbacks to the stored asset."""
    __tablename__ = "videos"

    id = Column(String(36), primary_key=True)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    image_id = Column(String(36), ForeignKey("team_images.id", ondelete="CASCADE"), nullable=False)
    prompt = Column(Text, nullable=False)
    aspect_ratio = Column(String(8), nullable=False, default="9:16", doc="ratio requested by the user")
    duration_seconds = Column(Integer, nullable=False, default=8)
    target_duration_seconds = Column(Integer, nullable=True)
    current_segment = Column(Integer, nullable=False, default=1)
    segment_prompts = Column(JSON, nullable=True)
    kie_task_id = Column(String(128), nullable=False, index=True, doc="provider task id of the in-flight call")
    generation_type = Column(String(64), nullable=False, default="FIRST_AND_LAST_FRAMES_2_VIDEO")
    status = Column(String(32), nullable=False, default="pending", doc="pending/processing/merging/completed/failed")
    error_message = Column(Text, nullable=True)
    video_url = Column(String(512), nullable=True, doc="storage path of the final asset")
    seed = Column(Integer, nullable=True)
    logo_url = Column(String(512), nullable=True)
    additional_image_url = Column(String(512), nullable=True)
    was_cropped = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
    completed_at = Column(DateTime, nullable=True)
    timeout_at = Column(DateTime, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "team_id": self.team_id,
            "image_id": self.image_id,
            "prompt": self.prompt,
            "aspect_ratio": self.aspect_ratio,
            "duration_seconds": self.duration_seconds,
            "target_duration_seconds": self.target_duration_seconds,
            "current_segment": self.current_segment,
            "segment_prompts": self.segment_prompts or [],
            "kie_task_id": self.kie_task_id,
            "generation_type": self.generation_type,
            "status": self.status,
            "error_message": self.error_message,
            "video_url": self.video_url,
            "seed": self.seed,
            "logo_url": self.logo_url,
            "additional_image_url": self.additional_image_url,
            "was_cropped": bool(self.was_cropped),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "timeout_at": self.timeout_at.isoformat() if self.timeout_at else None,
        }
