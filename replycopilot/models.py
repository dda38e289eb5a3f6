from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_SUGGESTIONS = 5


class Tone(str, Enum):
    PROFESSIONAL = "professional"
    FRIENDLY = "friendly"
    FUNNY = "funny"
    FLIRTY = "flirty"

    @property
    def display_name(self) -> str:
        return TONE_DISPLAY[self][0]

    @property
    def emoji(self) -> str:
        return TONE_DISPLAY[self][1]

    @property
    def description(self) -> str:
        return TONE_DESCRIPTIONS[self]

    @classmethod
    def values(cls) -> List[str]:
        return [member.value for member in cls]

    @classmethod
    def recommended_for(cls, platform: "Platform") -> "Tone":
        return RECOMMENDED_TONES[platform]


class Platform(str, Enum):
    WHATSAPP = "whatsapp"
    IMESSAGE = "imessage"
    INSTAGRAM = "instagram"
    OUTLOOK = "outlook"
    SLACK = "slack"
    TEAMS = "teams"

    @property
    def display_name(self) -> str:
        return PLATFORM_DISPLAY_NAMES[self]

    @classmethod
    def values(cls) -> List[str]:
        return [member.value for member in cls]

    @classmethod
    def from_bundle_id(cls, bundle_id: str) -> Optional["Platform"]:
        """Guess the messaging platform from the host app's bundle identifier."""
        lowered = bundle_id.lower()
        for needles, platform in _BUNDLE_ID_HINTS:
            if any(needle in lowered for needle in needles):
                return platform
        return None


DEFAULT_TONE = Tone.FRIENDLY
DEFAULT_PLATFORM = Platform.WHATSAPP


def default_platform(bundle_id: Optional[str] = None) -> Platform:
    """Platform to assume when the caller named none: the host app's, else WhatsApp."""
    if bundle_id:
        detected = Platform.from_bundle_id(bundle_id)
        if detected is not None:
            return detected
    return DEFAULT_PLATFORM

TONE_DISPLAY = {
    Tone.PROFESSIONAL: ("Professional", "💼"),
    Tone.FRIENDLY: ("Friendly", "😊"),
    Tone.FUNNY: ("Funny", "😂"),
    Tone.FLIRTY: ("Flirty", "😘"),
}

TONE_DESCRIPTIONS = {
    Tone.PROFESSIONAL: "For work emails, LinkedIn, and formal business communication",
    Tone.FRIENDLY: "For friends, family, and casual conversations",
    Tone.FUNNY: "For humorous chats with close friends",
    Tone.FLIRTY: "For romantic interests and playful conversations",
}

PLATFORM_DISPLAY_NAMES = {
    Platform.WHATSAPP: "WhatsApp",
    Platform.IMESSAGE: "iMessage",
    Platform.INSTAGRAM: "Instagram",
    Platform.OUTLOOK: "Outlook",
    Platform.SLACK: "Slack",
    Platform.TEAMS: "Microsoft Teams",
}

RECOMMENDED_TONES = {
    Platform.OUTLOOK: Tone.PROFESSIONAL,
    Platform.TEAMS: Tone.PROFESSIONAL,
    Platform.WHATSAPP: Tone.FRIENDLY,
    Platform.IMESSAGE: Tone.FRIENDLY,
    Platform.INSTAGRAM: Tone.FUNNY,
    Platform.SLACK: Tone.FUNNY,
}

# Checked in order, first match wins.
_BUNDLE_ID_HINTS = (
    (("whatsapp",), Platform.WHATSAPP),
    (("messages",), Platform.IMESSAGE),
    (("instagram",), Platform.INSTAGRAM),
    (("outlook", "mail"), Platform.OUTLOOK),
    (("slack",), Platform.SLACK),
    (("teams",), Platform.TEAMS),
)


class ParserConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    bullet_markers: tuple[str, ...] = ("-", "•", "*")
    fallback_min_length: int = Field(10, ge=0)
    fallback_max_length: int = Field(200, ge=1)
    max_suggestions: int = Field(MAX_SUGGESTIONS, ge=1, le=MAX_SUGGESTIONS)

    @field_validator("bullet_markers")
    @classmethod
    def validate_markers(cls, markers: tuple[str, ...]) -> tuple[str, ...]:
        if not markers or any(not marker for marker in markers):
            raise ValueError("bullet_markers must be non-empty strings")
        return markers


class GenerationRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Kept as received; the service resolves platform/tone so it can report the raw value.
    image: Optional[Union[bytes, str]] = None
    platform: str = DEFAULT_PLATFORM.value
    tone: str = DEFAULT_TONE.value
    user_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    def __repr__(self) -> str:
        size = len(self.image) if self.image else 0
        return (
            f"GenerationRequest(image=<{size} bytes>, platform={self.platform!r}, "
            f"tone={self.tone!r}, user_id={self.user_id!r})"
        )

    __str__ = __repr__


class GenerationResult(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    suggestions: List[str] = Field(default_factory=list, max_length=MAX_SUGGESTIONS)
    processing_time_ms: int = Field(..., ge=0)
    timestamp: str

    @field_validator("suggestions")
    @classmethod
    def validate_suggestions(cls, suggestions: List[str]) -> List[str]:
        if any(not suggestion.strip() for suggestion in suggestions):
            raise ValueError("suggestions must be non-empty after trimming")
        return suggestions
