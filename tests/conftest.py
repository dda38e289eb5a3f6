"""Shared fixtures: a scriptable fake model client and a service wired to it."""

from typing import Any, Optional

import pytest

from replycopilot.config import Settings
from replycopilot.generator import ReplyGenerationService
from replycopilot.models import GenerationRequest

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32

BULLETED_COMPLETION = """Here are some ideas:
- Sounds great, see you then!
- I'll be there at 3pm 😊
- Can't wait!"""


class FakeModelClient:
    """Records every call; returns ``text`` or raises ``error``."""

    def __init__(self, text: Optional[str] = BULLETED_COMPLETION, error: Optional[BaseException] = None):
        self.text = text
        self.error = error
        self.calls: list[dict[str, Any]] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def complete(self, **kwargs: Any) -> str:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.text


@pytest.fixture
def fake_client() -> FakeModelClient:
    return FakeModelClient()


@pytest.fixture
def settings() -> Settings:
    return Settings(anthropic_api_key="test-key")


@pytest.fixture
def service(fake_client, settings) -> ReplyGenerationService:
    return ReplyGenerationService(fake_client, settings=settings)


def make_request(**overrides: Any) -> GenerationRequest:
    values: dict[str, Any] = {
        "image": PNG_BYTES,
        "platform": "whatsapp",
        "tone": "friendly",
    }
    values.update(overrides)
    return GenerationRequest(**values)
