"""Teams and the images they own."""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, func
from .base import Base


class Team(Base):
    __tablename__ = "teams"

    id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False)
    owner_id = Column(String(128), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())


class TeamImage(Base):
    """Source image a video can be generated from."""
    __tablename__ = "team_images"

    id = Column(String(36), primary_key=True)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    storage_path = Column(String(512), nullable=False)
    file_name = Column(String(255), nullable=True)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "team_id": self.team_id,
            "storage_path": self.storage_path,
            "file_name": self.file_name,
            "width": self.width,
            "height": self.height,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
