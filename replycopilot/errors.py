import asyncio
from typing import Iterable, Optional

RETRYABLE_STATUS_CODES = frozenset({408, 409, 429})


class ReplyGenerationError(Exception):
    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MissingInput(ReplyGenerationError):
    kind = "missing_input"

    def __init__(self, field: str):
        super().__init__(f"Missing required field: {field}")
        self.field = field


class InvalidParameter(ReplyGenerationError):
    kind = "invalid_parameter"

    def __init__(self, field: str, value: object, allowed: Iterable[str]):
        self.allowed = tuple(allowed)
        super().__init__(f"Invalid {field} {value!r}. Must be one of: {', '.join(self.allowed)}")
        self.field = field
        self.value = value


class UpstreamError(ReplyGenerationError):
    """The model provider call failed.

    ``detail`` keeps the provider's own error text for diagnostics; it is
    never shown to end users.
    """

    kind = "upstream_error"

    def __init__(
        self,
        detail: str,
        *,
        reason: str = "unknown",
        status_code: Optional[int] = None,
        retryable: Optional[bool] = None,
    ):
        super().__init__(f"Model provider failure ({reason}): {detail}")
        self.detail = detail
        self.reason = reason
        self.status_code = status_code
        self.retryable = _default_retryable(reason, status_code) if retryable is None else retryable


class Cancelled(ReplyGenerationError, asyncio.CancelledError):
    """The caller gave up before the model answered.

    Also an ``asyncio.CancelledError`` so task cancellation still unwinds.
    """

    kind = "cancelled"

    def __init__(self):
        super().__init__("Reply generation was cancelled")


def _default_retryable(reason: str, status_code: Optional[int]) -> bool:
    if reason in {"timeout", "network"}:
        return True
    if status_code is None:
        return False
    return status_code in RETRYABLE_STATUS_CODES or status_code >= 500


def user_message(exc: ReplyGenerationError) -> str:
    if isinstance(exc, MissingInput):
        if exc.field == "image":
            return "Please attach a screenshot."
        return f"Please provide a {exc.field}."
    if isinstance(exc, InvalidParameter):
        return f"Please choose a valid {exc.field}."
    if isinstance(exc, Cancelled):
        return "Request cancelled."
    if isinstance(exc, UpstreamError):
        if exc.reason == "timeout":
            return "That took too long. Please try again."
        if exc.retryable:
            return "We couldn't reach the reply service. Please try again."
        return "Reply suggestions are unavailable right now."
    return "Something went wrong. Please try again."
