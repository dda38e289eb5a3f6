import logging
from typing import Optional

from flask import Flask, jsonify, request

from .config import Settings, load_settings
from .errors import (
    Cancelled,
    InvalidParameter,
    MissingInput,
    ReplyGenerationError,
    UpstreamError,
    user_message,
)
from .generator import ReplyGenerationService, utc_timestamp
from .llm import build_client
from .models import DEFAULT_TONE, GenerationRequest, default_platform

logger = logging.getLogger(__name__)

SERVICE_NAME = "replycopilot-backend"
SERVICE_VERSION = "1.0.0"

# Non-standard, but the conventional code for "client closed request".
CLIENT_CLOSED_REQUEST = 499

ERROR_STATUS_CODES: dict[type[ReplyGenerationError], int] = {
    MissingInput: 400,
    InvalidParameter: 400,
    UpstreamError: 500,
    Cancelled: CLIENT_CLOSED_REQUEST,
}


def _error_response(exc: ReplyGenerationError):
    body = {"success": False, "error": exc.kind, "message": user_message(exc)}
    if isinstance(exc, (MissingInput, InvalidParameter)):
        body["field"] = exc.field
    if isinstance(exc, UpstreamError):
        body["reason"] = exc.reason
        body["retryable"] = exc.retryable
    return jsonify(body), ERROR_STATUS_CODES.get(type(exc), 500)


def _invalid_request(message: str):
    return jsonify({"success": False, "error": "invalid_request", "message": message}), 400


def create_app(
    service: Optional[ReplyGenerationService] = None,
    settings: Optional[Settings] = None,
) -> Flask:
    settings = settings or (service.settings if service is not None else load_settings())
    if service is None:
        service = ReplyGenerationService(build_client(settings), settings=settings)

    app = Flask(__name__)
    # Images arrive base64-encoded, roughly 4/3 of their binary size.
    app.config["MAX_CONTENT_LENGTH"] = settings.max_image_bytes * 4 // 3 + 64 * 1024
    app.extensions["replycopilot"] = service

    @app.errorhandler(413)
    def payload_too_large(_error):
        limit_mb = settings.max_image_bytes / (1024 * 1024)
        return jsonify({
            "success": False,
            "error": "payload_too_large",
            "message": f"Screenshot is too large. Maximum size is {limit_mb:g} MB.",
        }), 413

    @app.route("/health", methods=["GET"])
    def health() -> tuple:
        return jsonify({
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "timestamp": utc_timestamp(),
        }), 200

    @app.route("/generateReplies", methods=["POST"])
    async def generate_replies():
        """
        Generate reply suggestions from a chat screenshot.

        JSON body: { "image": "<base64 or data URL>", "platform": "whatsapp",
                     "tone": "friendly", "userId": null, "metadata": {},
                     "bundleId": "net.whatsapp.WhatsApp" }
        When platform is omitted it is detected from bundleId, else whatsapp.
        tone defaults to friendly.
        """
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            logger.info("generateReplies called without a JSON object body.")
            return _invalid_request("Request body must be a JSON object.")

        image = body.get("image")
        platform = body.get("platform")
        tone = body.get("tone")
        if platform is None:
            bundle_id = body.get("bundleId")
            platform = default_platform(bundle_id if isinstance(bundle_id, str) else None).value
        if tone is None:
            tone = DEFAULT_TONE.value
        metadata = body.get("metadata") or {}
        user_id = body.get("userId")
        if not isinstance(image, (str, type(None))):
            return _invalid_request("image must be a base64 string or data URL.")
        if not isinstance(metadata, dict):
            metadata = {}

        gen_request = GenerationRequest(
            image=image,
            platform=str(platform),
            tone=str(tone),
            user_id=str(user_id) if user_id is not None else None,
            metadata=metadata,
        )

        try:
            result = await service.generate(gen_request)
        except UpstreamError as exc:
            logger.error("Error generating replies: %s", exc)
            return _error_response(exc)
        except ReplyGenerationError as exc:
            return _error_response(exc)

        response = jsonify({
            "success": True,
            "suggestions": result.suggestions,
            "platform": gen_request.platform,
            "tone": gen_request.tone,
            "processingTime": result.processing_time_ms,
            "timestamp": result.timestamp,
        })
        response.headers["X-Processing-Time"] = f"{result.processing_time_ms}ms"
        return response, 200

    return app
