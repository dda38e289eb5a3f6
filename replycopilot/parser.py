"""Turn free-form model completions into a short list of reply suggestions.

Models do not reliably follow the bulleted output format, so parsing runs in
two tiers: bullet lines first, then sentence-sized fragments of the whole
text. Nothing here raises; an empty list means no suggestions were found.
"""

import re
from typing import List, Optional

from .models import ParserConfig

DEFAULT_PARSER_CONFIG = ParserConfig()

_FRAGMENT_SPLIT = re.compile(r"[.\n]")


def _strip_bullet(line: str, markers: tuple[str, ...]) -> Optional[str]:
    for marker in markers:
        if line.startswith(marker):
            return line[len(marker):].strip()
    return None


def _bulleted(raw_text: str, config: ParserConfig) -> List[str]:
    suggestions = []
    for line in raw_text.split("\n"):
        stripped = _strip_bullet(line.strip(), config.bullet_markers)
        if stripped:
            suggestions.append(stripped)
    return suggestions


def _fragments(raw_text: str, config: ParserConfig) -> List[str]:
    fragments = (fragment.strip() for fragment in _FRAGMENT_SPLIT.split(raw_text))
    return [
        fragment
        for fragment in fragments
        if config.fallback_min_length < len(fragment) < config.fallback_max_length
    ]


def parse_suggestions(raw_text: str, config: ParserConfig = DEFAULT_PARSER_CONFIG) -> List[str]:
    if not raw_text:
        return []

    suggestions = _bulleted(raw_text, config)
    if not suggestions:
        suggestions = _fragments(raw_text, config)
    return suggestions[: config.max_suggestions]
