from .base import Base
from .brand_profile import BrandProfile
from .subscription import Subscription
from .team import Team, TeamImage
from .video_record import VideoRecord

__all__ = [
    "Base",
    "BrandProfile",
    "Subscription",
    "Team",
    "TeamImage",
    "VideoRecord",
]
