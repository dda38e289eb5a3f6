"""Tests for ReplyGenerationService.generate and its helpers."""

import asyncio
import base64
import logging
import re

import pytest

from replycopilot.config import Settings
from replycopilot.errors import Cancelled, InvalidParameter, MissingInput, UpstreamError
from replycopilot.generator import ReplyGenerationService, sniff_media_type, to_data_url
from replycopilot.models import ParserConfig, Platform, Tone
from replycopilot.prompts import build_system_prompt, build_user_prompt
from tests.conftest import PNG_BYTES, FakeModelClient, make_request


# ── Image normalisation ─────────────────────────────────────────────────────

class TestToDataUrl:
    def test_data_url_passes_through(self) -> None:
        assert to_data_url("data:image/png;base64,AAAA") == "data:image/png;base64,AAAA"

    def test_raw_base64_defaults_to_jpeg(self) -> None:
        assert to_data_url("AAAA") == "data:image/jpeg;base64,AAAA"

    def test_bytes_are_encoded_with_sniffed_type(self) -> None:
        url = to_data_url(PNG_BYTES)

        assert url == "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode("ascii")

    @pytest.mark.parametrize(
        "data, expected",
        [
            (b"\xff\xd8\xff\xe0rest", "image/jpeg"),
            (b"GIF89a....", "image/gif"),
            (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "image/webp"),
            (b"unknown bytes", "image/jpeg"),
        ],
    )
    def test_sniff_media_type(self, data: bytes, expected: str) -> None:
        assert sniff_media_type(data) == expected


# ── Validation ──────────────────────────────────────────────────────────────

class TestValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "image", [None, "", "   ", b"", "data:image/png;base64,", " data:image/jpeg;base64,  ", "data:image/png"]
    )
    async def test_missing_image_never_calls_model(self, service, fake_client, image) -> None:
        with pytest.raises(MissingInput) as excinfo:
            await service.generate(make_request(image=image))

        assert excinfo.value.field == "image"
        assert fake_client.call_count == 0

    @pytest.mark.asyncio
    async def test_unknown_platform_is_rejected(self, service, fake_client) -> None:
        with pytest.raises(InvalidParameter) as excinfo:
            await service.generate(make_request(platform="myspace"))

        assert excinfo.value.field == "platform"
        assert excinfo.value.value == "myspace"
        assert "whatsapp" in excinfo.value.allowed
        assert fake_client.call_count == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tone", ["sarcastic", "Friendly", "FRIENDLY", " friendly", ""])
    async def test_tone_outside_the_enumeration_is_rejected(self, service, fake_client, tone) -> None:
        with pytest.raises(InvalidParameter) as excinfo:
            await service.generate(make_request(tone=tone))

        assert excinfo.value.field == "tone"
        assert excinfo.value.value == tone
        assert fake_client.call_count == 0

    @pytest.mark.asyncio
    async def test_platform_checked_before_tone(self, service) -> None:
        with pytest.raises(InvalidParameter) as excinfo:
            await service.generate(make_request(platform="myspace", tone="sarcastic"))

        assert excinfo.value.field == "platform"

    @pytest.mark.asyncio
    async def test_missing_image_reported_before_bad_enums(self, service) -> None:
        with pytest.raises(MissingInput):
            await service.generate(make_request(image="", platform="myspace", tone="sarcastic"))


# ── Successful generation ───────────────────────────────────────────────────

class TestGenerate:
    @pytest.mark.asyncio
    async def test_returns_parsed_suggestions(self, service) -> None:
        result = await service.generate(make_request())

        assert result.suggestions == ["Sounds great, see you then!", "I'll be there at 3pm 😊", "Can't wait!"]
        assert result.processing_time_ms >= 0
        assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z", result.timestamp)

    @pytest.mark.asyncio
    async def test_calls_model_once_with_prompts_and_settings(self, fake_client) -> None:
        settings = Settings(max_tokens=321, temperature=0.4, timeout_seconds=12)
        service = ReplyGenerationService(fake_client, settings=settings)

        await service.generate(make_request(platform="slack", tone="professional", image="AAAA"))

        assert fake_client.call_count == 1
        call = fake_client.calls[0]
        assert call["system"] == build_system_prompt(Tone.PROFESSIONAL, Platform.SLACK)
        assert call["user_text"] == build_user_prompt()
        assert call["image_url"] == "data:image/jpeg;base64,AAAA"
        assert call["max_tokens"] == 321
        assert call["temperature"] == 0.4
        assert call["n"] == 1
        assert call["timeout"] == 12

    @pytest.mark.asyncio
    async def test_explicit_timeout_overrides_default(self, service, fake_client) -> None:
        await service.generate(make_request(), timeout=3.5)

        assert fake_client.calls[0]["timeout"] == 3.5

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", None])
    async def test_empty_completion_is_not_an_error(self, settings, text) -> None:
        service = ReplyGenerationService(FakeModelClient(text=text), settings=settings)

        result = await service.generate(make_request())

        assert result.suggestions == []
        assert result.processing_time_ms >= 0

    @pytest.mark.asyncio
    async def test_parser_config_is_applied(self, settings) -> None:
        client = FakeModelClient(text="- a\n- b\n- c")
        service = ReplyGenerationService(client, settings=settings, parser_config=ParserConfig(max_suggestions=2))

        result = await service.generate(make_request())

        assert result.suggestions == ["a", "b"]

    @pytest.mark.asyncio
    async def test_concurrent_calls_are_independent(self, settings) -> None:
        client = FakeModelClient()
        service = ReplyGenerationService(client, settings=settings)

        results = await asyncio.gather(
            service.generate(make_request(platform="teams", tone="professional")),
            service.generate(make_request(platform="instagram", tone="funny")),
        )

        assert [len(r.suggestions) for r in results] == [3, 3]
        assert client.call_count == 2


# ── Upstream failures and cancellation ──────────────────────────────────────

class _SlowClient:
    def __init__(self) -> None:
        self.started = asyncio.Event()

    async def complete(self, **kwargs) -> str:
        self.started.set()
        await asyncio.sleep(10)
        return "- too late"


class TestFailures:
    @pytest.mark.asyncio
    async def test_upstream_error_passes_through(self, settings) -> None:
        error = UpstreamError("rate limited", reason="provider", status_code=429)
        service = ReplyGenerationService(FakeModelClient(error=error), settings=settings)

        with pytest.raises(UpstreamError) as excinfo:
            await service.generate(make_request())

        assert excinfo.value is error
        assert excinfo.value.retryable is True

    @pytest.mark.asyncio
    async def test_unexpected_client_error_becomes_upstream_error(self, settings) -> None:
        service = ReplyGenerationService(FakeModelClient(error=KeyError("choices")), settings=settings)

        with pytest.raises(UpstreamError) as excinfo:
            await service.generate(make_request())

        assert excinfo.value.reason == "unknown"
        assert "choices" in excinfo.value.detail
        assert isinstance(excinfo.value.__cause__, KeyError)

    @pytest.mark.asyncio
    async def test_timeout_is_upstream_error_with_timeout_reason(self, settings) -> None:
        service = ReplyGenerationService(_SlowClient(), settings=settings)

        with pytest.raises(UpstreamError) as excinfo:
            await service.generate(make_request(), timeout=0.01)

        assert excinfo.value.reason == "timeout"
        assert excinfo.value.retryable is True

    @pytest.mark.asyncio
    async def test_cancellation_from_client_is_cancelled(self, settings) -> None:
        service = ReplyGenerationService(FakeModelClient(error=asyncio.CancelledError()), settings=settings)

        with pytest.raises(Cancelled):
            await service.generate(make_request())

    @pytest.mark.asyncio
    async def test_cancelling_the_task_cancels_the_model_call(self, settings) -> None:
        client = _SlowClient()
        service = ReplyGenerationService(client, settings=settings)

        task = asyncio.create_task(service.generate(make_request()))
        await client.started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert task.cancelled()

    def test_cancelled_is_not_an_upstream_error(self) -> None:
        assert not issubclass(Cancelled, UpstreamError)
        assert issubclass(Cancelled, asyncio.CancelledError)


# ── Telemetry ───────────────────────────────────────────────────────────────

class TestTelemetry:
    @pytest.mark.asyncio
    async def test_success_record_has_metadata_only(self, service, caplog) -> None:
        caplog.set_level(logging.INFO, logger="replycopilot.generator")

        await service.generate(make_request(user_id="user-42", image="SECRETIMAGEDATA"))

        records = [r for r in caplog.records if hasattr(r, "telemetry")]
        assert len(records) == 1
        telemetry = records[0].telemetry
        assert telemetry["user_id"] == "user-42"
        assert telemetry["platform"] == "whatsapp"
        assert telemetry["tone"] == "friendly"
        assert telemetry["suggestion_count"] == 3
        assert telemetry["success"] is True
        assert telemetry["processing_time_ms"] >= 0
        assert "SECRETIMAGEDATA" not in caplog.text
        assert "Sounds great" not in caplog.text

    @pytest.mark.asyncio
    async def test_anonymous_when_no_user_id(self, service, caplog) -> None:
        caplog.set_level(logging.INFO, logger="replycopilot.generator")

        await service.generate(make_request())

        records = [r for r in caplog.records if hasattr(r, "telemetry")]
        assert records[0].telemetry["user_id"] == "anonymous"

    @pytest.mark.asyncio
    async def test_failure_is_reported(self, settings, caplog) -> None:
        caplog.set_level(logging.INFO, logger="replycopilot.generator")
        error = UpstreamError("boom", reason="network")
        service = ReplyGenerationService(FakeModelClient(error=error), settings=settings)

        with pytest.raises(UpstreamError):
            await service.generate(make_request())

        records = [r for r in caplog.records if hasattr(r, "telemetry")]
        assert len(records) == 1
        assert records[0].telemetry["success"] is False
        assert records[0].telemetry["error_reason"] == "network"

    @pytest.mark.asyncio
    async def test_validation_errors_are_not_reported(self, service, caplog) -> None:
        caplog.set_level(logging.DEBUG, logger="replycopilot.generator")

        with pytest.raises(MissingInput):
            await service.generate(make_request(image=""))

        assert not [r for r in caplog.records if hasattr(r, "telemetry")]
