from typing import Dict, Optional
from uuid import uuid4

from ..db.session import get_session
from ..models.brand_profile import BrandProfile
from ..models.team import Team
from ..utils.clock import utcnow
from ..utils.dto import to_brand_profile_dto
from ..utils.validators import optional_str
from .errors import NotFoundError
from .logging import log_event

EDITABLE_FIELDS = ("company_name", "website_url", "instagram_url", "business_description", "target_audience", "tone_of_voice")


class BrandService:
    """Team brand profiles and their AI analysis."""

    def __init__(self, analyzer=None, session_factory=get_session):
        self._analyzer = analyzer
        self._session_factory = session_factory

    def get_profile(self, team_id: str) -> Dict:
        with self._session_factory() as session:
            row = session.query(BrandProfile).filter(BrandProfile.team_id == team_id).first()
            if row is None:
                raise NotFoundError("Brand profile not found")
            return to_brand_profile_dto(row)

    def upsert_profile(self, team_id: str, payload: Dict) -> Dict:
        updates = {k: optional_str(payload.get(k)) for k in EDITABLE_FIELDS if k in payload}
        with self._session_factory() as session:
            row = session.query(BrandProfile).filter(BrandProfile.team_id == team_id).first()
            if row is None:
                if not updates.get("company_name"):
                    raise ValueError("company_name is required")
                if session.get(Team, team_id) is None:
                    session.add(Team(id=team_id, name=updates["company_name"]))
                    session.flush()
                row = BrandProfile(id=str(uuid4()), team_id=team_id, company_name=updates["company_name"])
                session.add(row)
            elif "company_name" in updates and not updates["company_name"]:
                raise ValueError("company_name cannot be empty")
            for key, value in updates.items():
                setattr(row, key, value)
            if "brand_values" in payload:
                values = payload.get("brand_values")
                if not isinstance(values, list):
                    raise ValueError("brand_values must be a list")
                row.brand_values = [str(v) for v in values]
            if "visual_identity" in payload:
                identity = payload.get("visual_identity")
                if not isinstance(identity, dict):
                    raise ValueError("visual_identity must be an object")
                row.visual_identity = identity
            row.updated_at = utcnow()
            session.flush()
            data = to_brand_profile_dto(row)
        log_event("info", "brand.saved", team_id=team_id)
        return data

    def analyze(self, team_id: str) -> Dict:
        """Run the brand analysis for the stored profile and persist the result."""
        profile = self.get_profile(team_id)
        if not profile["website_url"] and not profile["instagram_url"]:
            raise ValueError("A website or Instagram URL is required for the analysis")
        if self._analyzer is None or not self._analyzer.is_enabled():
            raise RuntimeError("Brand analysis is not configured")

        self._set_status(team_id, "analyzing")
        try:
            result = self._analyzer.analyze_brand(
                profile["company_name"], profile["website_url"], profile["instagram_url"]
            )
        except Exception as exc:
            self._set_status(team_id, "failed")
            log_event("error", "brand.analysis_failed", team_id=team_id, error=f"{type(exc).__name__}: {exc}")
            raise

        with self._session_factory() as session:
            row = session.query(BrandProfile).filter(BrandProfile.team_id == team_id).one()
            row.business_description = result["business_description"]
            row.target_audience = result["target_audience"]
            row.tone_of_voice = result["tone_of_voice"]
            row.brand_values = result["brand_values"]
            row.visual_identity = result["visual_identity"]
            row.analysis_status = "completed"
            row.analyzed_at = utcnow()
            session.flush()
            data = to_brand_profile_dto(row)
        log_event("info", "brand.analyzed", team_id=team_id)
        return data

    def brand_context(self, team_id: str) -> Optional[str]:
        with self._session_factory() as session:
            row = session.query(BrandProfile).filter(BrandProfile.team_id == team_id).first()
            if row is None:
                return None
            return f"Brand: {row.company_name}. {row.business_description or ''}".strip()

    def _set_status(self, team_id: str, status: str) -> None:
        with self._session_factory() as session:
            row = session.query(BrandProfile).filter(BrandProfile.team_id == team_id).one()
            row.analysis_status = status
