import asyncio
import base64
import logging
import time
from datetime import datetime, timezone
from typing import Optional, Union

from .config import Settings
from .errors import Cancelled, InvalidParameter, MissingInput, UpstreamError
from .llm import ModelClient
from .models import GenerationRequest, GenerationResult, ParserConfig, Platform, Tone
from .parser import parse_suggestions
from .prompts import build_system_prompt, build_user_prompt

logger = logging.getLogger(__name__)

_IMAGE_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


def sniff_media_type(data: bytes) -> str:
    for signature, media_type in _IMAGE_SIGNATURES:
        if data.startswith(signature):
            return media_type
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"


def to_data_url(image: Union[bytes, str]) -> str:
    if isinstance(image, bytes):
        encoded = base64.b64encode(image).decode("ascii")
        return f"data:{sniff_media_type(image)};base64,{encoded}"
    image = image.strip()
    if image.startswith("data:"):
        return image
    return f"data:image/jpeg;base64,{image}"


def has_image_payload(image: Optional[Union[bytes, str]]) -> bool:
    if image is None or len(image) == 0:
        return False
    if isinstance(image, bytes):
        return True
    image = image.strip()
    if image.startswith("data:"):
        # "data:image/png;base64," carries no image.
        return bool(image.partition(",")[2].strip())
    return bool(image)


def resolve_platform(value: str) -> Platform:
    try:
        return Platform(value)
    except ValueError:
        raise InvalidParameter("platform", value, Platform.values()) from None


def resolve_tone(value: str) -> Tone:
    try:
        return Tone(value)
    except ValueError:
        raise InvalidParameter("tone", value, Tone.values()) from None


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ReplyGenerationService:
    """Screenshot in, reply suggestions out.

    One model call per ``generate()``; no retries here. Compose
    ``retry.retry_generation`` around it when the caller wants them.
    """

    def __init__(
        self,
        client: ModelClient,
        settings: Optional[Settings] = None,
        parser_config: Optional[ParserConfig] = None,
    ):
        self.client = client
        self.settings = settings or Settings()
        self.parser_config = parser_config or self.settings.parser

    def validate(self, request: GenerationRequest) -> tuple[Platform, Tone]:
        if not has_image_payload(request.image):
            raise MissingInput("image")
        return resolve_platform(request.platform), resolve_tone(request.tone)

    async def generate(
        self,
        request: GenerationRequest,
        *,
        timeout: Optional[float] = None,
    ) -> GenerationResult:
        platform, tone = self.validate(request)
        image_url = to_data_url(request.image)
        system_prompt = build_system_prompt(tone, platform)
        user_prompt = build_user_prompt()
        timeout = timeout if timeout is not None else self.settings.timeout_seconds
        user = request.user_id or "anonymous"

        logger.debug("[%s] Processing reply request - Platform: %s, Tone: %s", user, platform.value, tone.value)
        started = time.monotonic()
        try:
            raw = await asyncio.wait_for(
                self.client.complete(
                    system=system_prompt,
                    user_text=user_prompt,
                    image_url=image_url,
                    max_tokens=self.settings.max_tokens,
                    temperature=self.settings.temperature,
                    n=1,
                    timeout=timeout,
                ),
                timeout=timeout,
            )
        except asyncio.CancelledError as exc:
            logger.info("[%s] Reply request cancelled", user)
            raise Cancelled() from exc
        except asyncio.TimeoutError as exc:
            error = UpstreamError(f"model call exceeded {timeout:g}s", reason="timeout")
            self._report(user, platform, tone, 0, started, success=False, error=error)
            raise error from exc
        except UpstreamError as exc:
            self._report(user, platform, tone, 0, started, success=False, error=exc)
            raise
        except Exception as exc:
            error = UpstreamError(str(exc) or type(exc).__name__, reason="unknown")
            self._report(user, platform, tone, 0, started, success=False, error=error)
            raise error from exc

        suggestions = parse_suggestions(raw or "", self.parser_config)
        elapsed_ms = self._report(user, platform, tone, len(suggestions), started, success=True)
        return GenerationResult(
            suggestions=suggestions,
            processing_time_ms=elapsed_ms,
            timestamp=utc_timestamp(),
        )

    def _report(
        self,
        user: str,
        platform: Platform,
        tone: Tone,
        suggestion_count: int,
        started: float,
        *,
        success: bool,
        error: Optional[UpstreamError] = None,
    ) -> int:
        elapsed_ms = max(0, int(round((time.monotonic() - started) * 1000)))
        telemetry = {
            "user_id": user,
            "platform": platform.value,
            "tone": tone.value,
            "suggestion_count": suggestion_count,
            "processing_time_ms": elapsed_ms,
            "success": success,
        }
        if error is None:
            logger.info(
                "[%s] Generated %d suggestions in %dms",
                user,
                suggestion_count,
                elapsed_ms,
                extra={"telemetry": telemetry},
            )
        else:
            telemetry["error_reason"] = error.reason
            telemetry["status_code"] = error.status_code
            logger.warning(
                "[%s] Reply generation failed (%s) after %dms: %s",
                user,
                error.reason,
                elapsed_ms,
                error.detail,
                extra={"telemetry": telemetry},
            )
        return elapsed_ms
