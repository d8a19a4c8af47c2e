from typing import Any, Dict


def _iso(value: Any):
    return value.isoformat() if value is not None else None


def to_subscription_dto(row: Any) -> Dict:
    used = getattr(row, "videos_generated_this_month", 0) or 0
    limit = getattr(row, "video_limit", None)
    return {
        "team_id": getattr(row, "team_id", None),
        "plan_type": getattr(row, "plan_type", None),
        "video_limit": limit,
        "videos_generated_this_month": used,
        "remaining": None if limit is None else max(0, limit - used),
        "stripe_customer_id": getattr(row, "stripe_customer_id", None),
        "stripe_subscription_id": getattr(row, "stripe_subscription_id", None),
        "stripe_price_id": getattr(row, "stripe_price_id", None),
        "current_period_start": _iso(getattr(row, "current_period_start", None)),
        "current_period_end": _iso(getattr(row, "current_period_end", None)),
        "cancel_at_period_end": bool(getattr(row, "cancel_at_period_end", False)),
        "pending_plan_change": getattr(row, "pending_plan_change", None),
    }


def to_brand_profile_dto(row: Any) -> Dict:
    return {
        "team_id": getattr(row, "team_id", None),
        "company_name": getattr(row, "company_name", None),
        "website_url": getattr(row, "website_url", None),
        "instagram_url": getattr(row, "instagram_url", None),
        "business_description": getattr(row, "business_description", None),
        "target_audience": getattr(row, "target_audience", None),
        "tone_of_voice": getattr(row, "tone_of_voice", None),
        "brand_values": getattr(row, "brand_values", None) or [],
        "visual_identity": getattr(row, "visual_identity", None) or {},
        "analysis_status": getattr(row, "analysis_status", None),
        "analyzed_at": _iso(getattr(row, "analyzed_at", None)),
    }
