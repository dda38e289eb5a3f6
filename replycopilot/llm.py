import logging
from typing import Any, Optional, Protocol

import anthropic
import openai
from anthropic import AsyncAnthropic
from openai import AsyncAzureOpenAI, AsyncOpenAI

from .config import Settings
from .errors import UpstreamError

logger = logging.getLogger(__name__)


class ModelClient(Protocol):
    """Chat-completion shaped vision model: one system message, one user turn
    holding text plus a single image, a token cap, a temperature and n=1."""

    async def complete(
        self,
        *,
        system: str,
        user_text: str,
        image_url: str,
        max_tokens: int,
        temperature: float,
        n: int = 1,
        timeout: Optional[float] = None,
    ) -> str: ...


def split_data_url(image_url: str) -> Optional[tuple[str, str]]:
    """Return (media_type, base64_data) for a base64 data URL, else None."""
    if not image_url.startswith("data:"):
        return None
    header, _, data = image_url.partition(",")
    media_type, _, encoding = header[len("data:"):].partition(";")
    if encoding != "base64" or not data:
        return None
    return media_type or "image/jpeg", data


def _translate_error(exc: Exception, sdk: Any, provider: str) -> UpstreamError:
    if isinstance(exc, sdk.APITimeoutError):
        return UpstreamError(str(exc), reason="timeout")
    if isinstance(exc, sdk.APIConnectionError):
        return UpstreamError(str(exc), reason="network")
    if isinstance(exc, sdk.APIStatusError):
        return UpstreamError(str(exc), reason="provider", status_code=exc.status_code)
    logger.debug("Unclassified %s error: %s", provider, type(exc).__name__)
    return UpstreamError(str(exc), reason="malformed")


def without_sdk_retries(client: Any) -> Any:
    """Turn off the SDK's own retry loop; one generate() is one request."""
    if isinstance(client, (AsyncAnthropic, AsyncOpenAI)) and client.max_retries != 0:
        return client.with_options(max_retries=0)
    return client


def extract_text(resp) -> str:
    parts = []
    for block in getattr(resp, "content", None) or []:
        if getattr(block, "type", "text") == "text" and getattr(block, "text", None):
            parts.append(block.text)
    return "".join(parts).strip()


def extract_choice_text(resp) -> str:
    choices = getattr(resp, "choices", None) or []
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    return content.strip() if isinstance(content, str) else ""


class AnthropicVisionClient:
    def __init__(self, model: str, *, client: Any | None = None, api_key: str | None = None):
        self.model = model
        self.client = without_sdk_retries(resolve_client(client=client, api_key=api_key))

    def _image_block(self, image_url: str) -> dict[str, Any]:
        parts = split_data_url(image_url)
        if parts is None:
            return {"type": "image", "source": {"type": "url", "url": image_url}}
        media_type, data = parts
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": media_type, "data": data},
        }

    async def complete(
        self,
        *,
        system: str,
        user_text: str,
        image_url: str,
        max_tokens: int,
        temperature: float,
        n: int = 1,
        timeout: Optional[float] = None,
    ) -> str:
        if n != 1:
            raise ValueError("Anthropic messages return a single completion; n must be 1")
        try:
            resp = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": user_text},
                            self._image_block(image_url),
                        ],
                    }
                ],
                timeout=timeout,
            )
        except anthropic.APIError as exc:
            raise _translate_error(exc, anthropic, "anthropic") from exc
        return extract_text(resp)


class OpenAIVisionClient:
    """OpenAI Chat Completions, or an Azure OpenAI deployment when ``model`` names one."""

    def __init__(self, model: str, *, client: Any | None = None):
        if client is None:
            raise RuntimeError("client is required; use build_client() to construct one from settings")
        self.model = model
        self.client = without_sdk_retries(client)

    async def complete(
        self,
        *,
        system: str,
        user_text: str,
        image_url: str,
        max_tokens: int,
        temperature: float,
        n: int = 1,
        timeout: Optional[float] = None,
    ) -> str:
        try:
            resp = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": user_text},
                            {"type": "image_url", "image_url": {"url": image_url}},
                        ],
                    },
                ],
                max_tokens=max_tokens,
                temperature=temperature,
                n=n,
                timeout=timeout,
            )
        except openai.APIError as exc:
            raise _translate_error(exc, openai, "openai") from exc
        return extract_choice_text(resp)


def resolve_client(client: Any | None = None, api_key: str | None = None) -> Any:
    if client is not None:
        return client
    if not api_key:
        raise RuntimeError("api_key is required when client is not provided")
    return AsyncAnthropic(api_key=api_key, max_retries=0)


def build_client(settings: Settings) -> ModelClient:
    model = settings.resolved_model
    if settings.provider == "anthropic":
        return AnthropicVisionClient(model, api_key=settings.anthropic_api_key)

    if not settings.openai_api_key:
        raise RuntimeError("OPENAI_API_KEY is required for the openai and azure providers")
    if settings.provider == "azure":
        if not settings.openai_endpoint:
            raise RuntimeError("OPENAI_ENDPOINT is required for the azure provider")
        sdk_client = AsyncAzureOpenAI(
            azure_endpoint=settings.openai_endpoint,
            api_key=settings.openai_api_key,
            api_version=settings.openai_api_version,
            max_retries=0,
        )
    else:
        sdk_client = AsyncOpenAI(
            api_key=settings.openai_api_key,
            base_url=settings.openai_endpoint,
            max_retries=0,
        )
    return OpenAIVisionClient(model, client=sdk_client)
