import json
import logging
import os
import re
from io import BytesIO
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from PIL import Image, UnidentifiedImageError
from google import genai
from google.genai import types as genai_types

from .logging import log_event
from .video_state import BASE_SEGMENT_SECONDS, segments_needed

FALLBACK_VIDEO_PROMPT = (
    "Ultra-dynamic Instagram Reels style video. Fast zooms, hard cuts, punchy transitions. "
    "Energetic, captivating motion. No sound."
)

_PROMPT_TYPE_GUIDES = {
    "situation": (
        "Describe the main subject (person, outfit, posture) and stage it in a dynamic real-life situation. "
        "Use FAST camera moves: zoom punch, quick tracking shot, dynamic rotation, hard jump cuts."
    ),
    "product": (
        "Describe the product (shape, colour, materials, textures) and showcase it with premium moves: "
        "zoom burst on the details, 360 degree rotation, whip pans and hard cuts."
    ),
    "testimonial": (
        "Describe the person and the object they hold and create a spontaneous interaction between them: "
        "handheld camera, shake effect, jump cuts, whip pans."
    ),
}
_DEFAULT_GUIDE = "Describe the main subject and add FAST camera moves around it."

_JSON_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


class GeminiService:
    """
    Gemini LLM helper for the video pipeline:
    - splits a prompt into chained per-segment prompts
    - writes a video prompt from a source image
    - analyses a brand from its public footprint
    """

    DEFAULT_LLM = "gemini-2.5-flash"
    IMAGE_MAX_SIDE = 640

    def __init__(self, settings_json_path: Optional[str] = None, client: Optional[Any] = None) -> None:
        self.logger = logging.getLogger(__name__)
        self.api_key: Optional[str] = None
        self.llm_name: str = self.DEFAULT_LLM
        self.client: Optional[Any] = client
        self._load_settings(settings_json_path)

    def _load_settings(self, settings_json_path: Optional[str] = None) -> None:
        """Loads settings from a JSON file and falls back to environment variables."""
        settings: Dict[str, Any] = {}
        if settings_json_path and Path(settings_json_path).exists():
            try:
                settings = json.loads(Path(settings_json_path).read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                self.logger.warning("Error loading settings from %s: %s", settings_json_path, e)

        self.api_key = settings.get("GEMINI_API_KEY") or os.getenv("GEMINI_API_KEY")
        self.llm_name = settings.get("GEMINI_LLM") or os.getenv("GEMINI_LLM") or self.DEFAULT_LLM

        if self.client is None and self.api_key:
            self.client = genai.Client(api_key=self.api_key)

    def is_enabled(self) -> bool:
        return self.client is not None

    # ------------------------------------------------------------------
    # Public helpers

    def generate_segment_prompts(self, original_prompt: str, target_duration: int) -> List[str]:
        """Split ``original_prompt`` into one prompt per 8 second segment."""
        if not original_prompt or not original_prompt.strip():
            raise ValueError("original_prompt is required")
        count = segments_needed(target_duration)
        if count == 1:
            return [original_prompt]
        if not self.is_enabled():
            raise RuntimeError("Gemini client not configured")

        system = (
            "You are an expert in short Instagram videos. Split the user's video prompt into "
            f"{count} coherent prompts of {BASE_SEGMENT_SECONDS} seconds each.\n"
            "- each prompt stands alone but flows naturally from the previous one\n"
            "- the first prompt introduces the subject, the next ones continue the action\n"
            "- keep the style, tone and aesthetic of the original prompt\n"
            'Answer ONLY with strict JSON: {"prompts": ["prompt 1", "prompt 2", ...]}'
        )
        user = (
            f'Original prompt: "{original_prompt}"\n'
            f"Target duration: {target_duration} seconds ({count} segments of {BASE_SEGMENT_SECONDS} seconds)"
        )
        text = self._generate_text([genai_types.Part.from_text(text=user)], system, temperature=0.7)
        parsed = self._parse_json_response(text)
        prompts = parsed.get("prompts") if parsed else None
        if not isinstance(prompts, list) or len(prompts) != count:
            received = len(prompts) if isinstance(prompts, list) else 0
            raise ValueError(f"Invalid number of prompts (expected {count}, received {received})")
        log_event("info", "gemini.segment_prompts", segments=count)
        return [str(p).strip() for p in prompts]

    def generate_video_prompt(
        self,
        image_bytes: bytes,
        prompt_type: str = "situation",
        brand_context: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Analyse the image, then write a video prompt based on that analysis.

        Returns ``{"prompt": str, "fallback": bool}``; only the prompt is meant
        for the user, the analysis is logged.
        """
        if not self.is_enabled():
            return {"prompt": FALLBACK_VIDEO_PROMPT, "fallback": True}

        guide = _PROMPT_TYPE_GUIDES.get(prompt_type, _DEFAULT_GUIDE)
        system = (
            "You are an expert in AI video generation for Instagram Reels. Work in two steps.\n"
            "STEP 1 image_analysis: describe in detail what is visible.\n"
            "STEP 2 video_prompt: based on that analysis, write a 200-250 character prompt that names "
            f"the identified subject. {guide} Always end with 'No sound.' No hashtags, no marketing words.\n"
            'Return STRICT JSON only: {"image_analysis": "...", "video_prompt": "..."}'
        )
        user = f"Brand context: {brand_context or 'Not specified'}"
        mime_type, data = self._resize_for_llm(image_bytes)
        parts = [
            genai_types.Part.from_text(text=user),
            genai_types.Part.from_bytes(data=data, mime_type=mime_type),
        ]
        try:
            text = self._generate_text(parts, system)
        except Exception as exc:
            log_event("warning", "gemini.video_prompt_failed", error=f"{type(exc).__name__}: {exc}")
            return {"prompt": FALLBACK_VIDEO_PROMPT, "fallback": True}

        parsed = self._parse_json_response(text)
        if parsed and parsed.get("video_prompt"):
            log_event("debug", "gemini.image_analysis", analysis=parsed.get("image_analysis"))
            return {"prompt": str(parsed["video_prompt"]).strip(), "fallback": False}
        if text and text.strip():
            return {"prompt": text.strip(), "fallback": False}
        return {"prompt": FALLBACK_VIDEO_PROMPT, "fallback": True}

    def analyze_brand(
        self,
        company_name: str,
        website_url: Optional[str] = None,
        instagram_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not self.is_enabled():
            raise RuntimeError("Gemini client not configured")
        system = (
            "You are a brand strategist. From the company name and its public links, infer the brand. "
            "Return STRICT JSON only with keys: business_description (string), target_audience (string), "
            "tone_of_voice (string), brand_values (array of strings), "
            "visual_identity (object with colors (array of hex strings) and style (string))."
        )
        user = (
            f"Company: {company_name}\n"
            f"Website: {website_url or 'n/a'}\n"
            f"Instagram: {instagram_url or 'n/a'}"
        )
        text = self._generate_text([genai_types.Part.from_text(text=user)], system)
        parsed = self._parse_json_response(text)
        if not parsed:
            raise ValueError("Brand analysis returned no JSON")
        values = parsed.get("brand_values")
        identity = parsed.get("visual_identity")
        return {
            "business_description": str(parsed.get("business_description") or ""),
            "target_audience": str(parsed.get("target_audience") or ""),
            "tone_of_voice": str(parsed.get("tone_of_voice") or ""),
            "brand_values": [str(v) for v in values] if isinstance(values, list) else [],
            "visual_identity": identity if isinstance(identity, dict) else {},
        }

    # ------------------------------------------------------------------
    # Internals

    def _generate_text(self, parts: List[Any], system: str, temperature: Optional[float] = None) -> str:
        contents = [genai_types.Content(role="user", parts=parts)]
        config = genai_types.GenerateContentConfig(system_instruction=system, temperature=temperature)
        response = self.client.models.generate_content(model=self.llm_name, contents=contents, config=config)  # type: ignore[union-attr]
        return self._extract_text_from_sdk(response) or ""

    @staticmethod
    def _extract_text_from_sdk(response: Any) -> Optional[str]:
        """Collect the text parts of an SDK response."""
        texts = []
        for c in getattr(response, "candidates", None) or []:
            content = getattr(c, "content", None)
            if not content:
                continue
            for p in getattr(content, "parts", None) or []:
                txt = getattr(p, "text", None)
                if isinstance(txt, str) and txt.strip():
                    texts.append(txt.strip())
        if texts:
            return "\n".join(texts)
        txt = getattr(response, "text", None)
        return txt if isinstance(txt, str) else None

    @staticmethod
    def _parse_json_response(text: Optional[str]) -> Optional[Dict[str, Any]]:
        if not text:
            return None
        match = _JSON_BLOCK.search(text)
        candidate = match.group(1).strip() if match else text.strip()
        start = candidate.find("{")
        end = candidate.rfind("}")
        if start == -1 or end <= start:
            return None
        try:
            parsed = json.loads(candidate[start:end + 1])
        except ValueError:
            return None
        return parsed if isinstance(parsed, dict) else None

    def _resize_for_llm(self, image_bytes: bytes) -> Tuple[str, bytes]:
        # long side scaled down to 640px to cut transfer and latency
        try:
            with Image.open(BytesIO(image_bytes)) as im:
                w, h = im.size
                max_side = max(w, h)
                if max_side <= self.IMAGE_MAX_SIDE and im.format == "JPEG":
                    return "image/jpeg", image_bytes
                scale = min(1.0, self.IMAGE_MAX_SIDE / float(max_side))
                new_w = max(1, int(round(w * scale)))
                new_h = max(1, int(round(h * scale)))
                im = im.convert("RGB").resize((new_w, new_h), Image.LANCZOS)
                buf = BytesIO()
                im.save(buf, format="JPEG", quality=90)
                return "image/jpeg", buf.getvalue()
        except (UnidentifiedImageError, OSError) as exc:
            raise ValueError("Unsupported image data") from exc
