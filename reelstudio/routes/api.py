"""HTTP API for the video pipeline, images, billing and brand profiles."""

from __future__ import annotations

import mimetypes
from io import BytesIO
from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, request, send_file

from ..common.services.errors import NotFoundError, ProviderError, QuotaExceededError
from ..common.services.logging import log_event
from ..common.services.storage_service import StorageError
from ..common.services.video_callback_service import CallbackPayload
from ..common.services.video_generation_service import GenerationRequest
from ..common.services.video_state import segments_needed


api_bp = Blueprint("reelstudio_api", __name__, url_prefix="/api")


def _components() -> Dict[str, Any]:
    return current_app.extensions["reelstudio_components"]


def _team_id() -> str:
    team_id = (request.headers.get("X-Team-Id") or "").strip()
    if not team_id:
        raise ValueError("X-Team-Id header is required")
    return team_id


def _json_body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValueError("Request body must be a JSON object")
    return payload


@api_bp.errorhandler(ValueError)
def _bad_request(exc: ValueError):
    return jsonify({"error": str(exc)}), 400


@api_bp.errorhandler(NotFoundError)
def _not_found(exc: NotFoundError):
    return jsonify({"error": str(exc)}), 404


@api_bp.errorhandler(QuotaExceededError)
def _quota_exceeded(exc: QuotaExceededError):
    return jsonify({"error": "Quota exceeded", "currentUsage": exc.current_usage, "limit": exc.limit}), 403


@api_bp.errorhandler(ProviderError)
def _provider_error(exc: ProviderError):
    return jsonify({"error": str(exc), "details": exc.details}), 500


# ---------------------------------------------------------------------------
# Videos


@api_bp.post("/videos/generate")
def generate_video():
    team_id = _team_id()
    generation = GenerationRequest.from_payload(_json_body())
    result = _components()["video_service"].generate(team_id, generation)
    return jsonify(result)


@api_bp.post("/videos/callback")
def video_callback():
    body = request.get_json(silent=True)
    try:
        payload = CallbackPayload.parse(body)
    except ValueError as exc:
        log_event("warning", "callback.rejected", error=str(exc))
        return jsonify({"error": str(exc)}), 400
    response, status = _components()["callback_service"].handle(payload)
    return jsonify(response), status


@api_bp.get("/videos")
def list_videos():
    team_id = _team_id()
    page = request.args.get("page", default=1, type=int)
    page_size = request.args.get("page_size", default=20, type=int)
    return jsonify(_components()["video_service"].list_videos(team_id, page, page_size))


@api_bp.get("/videos/<video_id>")
def get_video(video_id: str):
    return jsonify(_components()["video_service"].get_video(_team_id(), video_id))


@api_bp.post("/videos/<video_id>/regenerate")
def regenerate_video(video_id: str):
    return jsonify(_components()["video_service"].regenerate(_team_id(), video_id))


@api_bp.delete("/videos/<video_id>")
def delete_video(video_id: str):
    _components()["video_service"].delete_video(_team_id(), video_id)
    return jsonify({"status": "ok"})


@api_bp.post("/videos/segment-prompts")
def segment_prompts():
    payload = _json_body()
    prompt = str(payload.get("prompt") or "").strip()
    if not prompt:
        raise ValueError("prompt is required")
    try:
        duration = int(payload.get("targetDuration") or 8)
    except (TypeError, ValueError) as exc:
        raise ValueError("targetDuration must be an integer") from exc

    assistant = _components()["prompt_assistant"]
    if segments_needed(duration) > 1 and not assistant.is_enabled():
        return jsonify({"error": "Prompt assistant is not configured"}), 503
    try:
        prompts = assistant.generate_segment_prompts(prompt, duration)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 500
    return jsonify({"prompts": prompts})


@api_bp.post("/videos/prompt")
def video_prompt():
    team_id = _team_id()
    payload = _json_body()
    image_id = str(payload.get("imageId") or "").strip()
    if not image_id:
        raise ValueError("imageId is required")

    image_bytes = _components()["image_service"].read_bytes(team_id, image_id)
    brand_context = _components()["brand_service"].brand_context(team_id)
    result = _components()["prompt_assistant"].generate_video_prompt(
        image_bytes,
        prompt_type=str(payload.get("promptType") or "situation"),
        brand_context=brand_context,
    )
    return jsonify(result)


# ---------------------------------------------------------------------------
# Images and storage


@api_bp.post("/images")
def upload_image():
    team_id = _team_id()
    if "image" not in request.files:
        return jsonify({"error": "No uploaded image found, please choose a file."}), 400
    return jsonify(_components()["image_service"].save_upload(team_id, request.files["image"])), 201


@api_bp.get("/storage/<token>")
def storage_object(token: str):
    storage = _components()["storage"]
    try:
        bucket, path = storage.verify_token(token)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 403
    try:
        data = storage.download(bucket, path)
    except StorageError:
        return jsonify({"error": "Object not found"}), 404
    mimetype = mimetypes.guess_type(path)[0] or "application/octet-stream"
    return send_file(BytesIO(data), mimetype=mimetype, download_name=path.rsplit("/", 1)[-1])


# ---------------------------------------------------------------------------
# Billing


@api_bp.get("/subscription")
def get_subscription():
    return jsonify(_components()["subscription_service"].get_subscription(_team_id()))


@api_bp.post("/subscription/plan")
def change_plan():
    team_id = _team_id()
    payload = _json_body()
    new_plan = payload.get("newPlanType") or payload.get("plan")
    if not isinstance(new_plan, str) or not new_plan:
        raise ValueError("newPlanType is required")
    return jsonify(_components()["subscription_service"].change_plan(team_id, new_plan))


@api_bp.post("/stripe/webhook")
def stripe_webhook():
    service = _components()["subscription_service"]
    try:
        result = service.handle_webhook(request.get_data(), request.headers.get("Stripe-Signature"))
    except ValueError as exc:
        log_event("warning", "stripe.webhook_rejected", error=str(exc))
        return jsonify({"error": str(exc)}), 400
    return jsonify(result)


# ---------------------------------------------------------------------------
# Brand


@api_bp.get("/brand")
def get_brand():
    return jsonify(_components()["brand_service"].get_profile(_team_id()))


@api_bp.put("/brand")
def save_brand():
    return jsonify(_components()["brand_service"].upsert_profile(_team_id(), _json_body()))


@api_bp.post("/brand/analyze")
def analyze_brand():
    team_id = _team_id()
    try:
        return jsonify(_components()["brand_service"].analyze(team_id))
    except RuntimeError as exc:
        return jsonify({"error": str(exc)}), 503


# ---------------------------------------------------------------------------
# Internal


@api_bp.post("/internal/check-timeouts")
def check_timeouts():
    return jsonify(_components()["timeout_service"].sweep())
