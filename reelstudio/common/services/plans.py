"""Subscription plans and their monthly video allowance."""

from typing import Dict, Optional

# plan -> monthly video limit; None is unlimited
PLAN_VIDEO_LIMITS: Dict[str, Optional[int]] = {
    "free": 6,
    "starter": 20,
    "pro": 50,
    "business": None,
}

PLAN_HIERARCHY = ["free", "starter", "pro", "business"]

DEFAULT_PLAN = "free"


def video_limit_for(plan_type: str) -> Optional[int]:
    if plan_type not in PLAN_VIDEO_LIMITS:
        raise ValueError(f"Unknown plan type: {plan_type}")
    return PLAN_VIDEO_LIMITS[plan_type]


def is_downgrade(current_plan: str, new_plan: str) -> bool:
    return PLAN_HIERARCHY.index(new_plan) < PLAN_HIERARCHY.index(current_plan)
