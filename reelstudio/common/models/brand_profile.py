from sqlalchemy import Column, DateTime, ForeignKey, JSON, String, Text, func
from .base import Base


class BrandProfile(Base):
    __tablename__ = "brand_profiles"

    id = Column(String(36), primary_key=True)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, unique=True)
    company_name = Column(String(255), nullable=False)
    website_url = Column(String(512), nullable=True)
    instagram_url = Column(String(512), nullable=True)
    business_description = Column(Text, nullable=True)
    target_audience = Column(Text, nullable=True)
    tone_of_voice = Column(Text, nullable=True)
    brand_values = Column(JSON, nullable=True)
    visual_identity = Column(JSON, nullable=True)
    analysis_status = Column(String(32), nullable=True)  # pending / analyzing / completed / failed
    analyzed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
