"""Parse a language-model dream analysis reply into record fields.

The model is asked to answer in labelled sections::

    BAŞLIK: <short title>
    SEMBOLLER: <comma separated symbols>
    DUYGULAR: <comma separated emotions>
    FAL: <interpretation, one line>
    AÇIKLAMA: <improved description, may span lines>
    GÖRSEL: <visual description, may span lines>

Nothing enforces that format, so the reader tolerates missing, reordered,
duplicated and markdown-decorated sections and falls back to documented
defaults instead of raising.
"""

from __future__ import annotations

import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------
TITLE_MAX_LENGTH = 60
MAX_TAGS = 5
UNTITLED = "İsimsiz Rüya"
DEFAULT_INTERPRETATION = "Rüyanız ilginç semboller içeriyor."

IMAGE_STYLE_SUFFIX = (
    "Surreal, cinematic, high-detail visual with mystical lighting, "
    "ethereal color palette, dreamlike atmosphere, fantasy art style."
)
IMAGE_NEGATIVE_PROMPT = "ugly, blurry, low quality, distorted, text, watermark"

# Keys are compared against str.upper() of the label, which keeps the
# Turkish Ş/Ç/Ö intact.
LABELS = {
    "BAŞLIK": "title",
    "TITLE": "title",
    "SEMBOLLER": "categories",
    "SYMBOLS": "categories",
    "CATEGORIES": "categories",
    "DUYGULAR": "moods",
    "EMOTIONS": "moods",
    "MOODS": "moods",
    "FAL": "interpretation",
    "FORTUNE": "interpretation",
    "INTERPRETATION": "interpretation",
    "AÇIKLAMA": "narrative",
    "DESCRIPTION": "narrative",
    "NARRATIVE": "narrative",
    "GÖRSEL": "visual",
    "VISUAL": "visual",
}
MULTILINE_FIELDS = frozenset({"narrative", "visual"})

# ---------------------------------------------------------------------------
# Sanitizer
# ---------------------------------------------------------------------------
_IMAGE = re.compile(r"!\[([^\]]*)\]\([^)]*\)")
_LINK = re.compile(r"\[([^\]]*)\]\([^)]*\)")
_HEADING = re.compile(r"^[ \t]*#{1,6}(?:[ \t]+|$)", re.MULTILINE)
_INLINE_CODE = re.compile(r"`+")
_ASTERISKS = re.compile(r"\*+")
_DOUBLE_UNDERSCORE = re.compile(r"__+")
_UNDERSCORE_EMPHASIS = re.compile(r"(?<!\w)_(?=\S)(.+?)(?<=\S)_(?!\w)")

_LABEL_LINE = re.compile(r"^([^\W\d_]+)[ \t]*:[ \t]*(.*)$")
_BULLET = re.compile(r"^(?:[-•]|\d+[.)])[ \t]+")
_SENTENCE_END = re.compile(r"[.!?\n]")


def _sanitize_once(text: str) -> str:
    text = _IMAGE.sub(r"\1", text)
    text = _LINK.sub(r"\1", text)
    text = _HEADING.sub("", text)
    text = _INLINE_CODE.sub("", text)
    text = _ASTERISKS.sub("", text)
    text = _DOUBLE_UNDERSCORE.sub("", text)
    text = _UNDERSCORE_EMPHASIS.sub(r"\1", text)
    return text.strip()


def sanitize(text: str) -> str:
    """Strip markdown artifacts a language model tends to emit.

    Removes bold/italic markers, heading markers, inline-code backticks and
    link or image syntax (keeping the link text), then trims whitespace.
    Every pass only deletes characters, so repeating until nothing changes
    terminates and makes the function idempotent.

    Args:
        text: Raw text.  Non-string values are treated as empty.

    Returns:
        The cleaned text.
    """
    if not isinstance(text, str):
        return ""
    while True:
        cleaned = _sanitize_once(text)
        if cleaned == text:
            return cleaned
        text = cleaned


# ---------------------------------------------------------------------------
# Section reader
# ---------------------------------------------------------------------------

def match_label(line: str) -> tuple[str, str] | None:
    """Recognise a ``LABEL: value`` line.

    Emphasis, heading, bullet and numbered-list decoration around the
    label is ignored, so ``**BAŞLIK:** Uçan Ev``, ``## FAL: ...`` and
    ``1. SEMBOLLER: ...`` all match.

    Returns:
        ``(field, rest_of_line)`` for a known label, otherwise None.
    """
    cleaned = _BULLET.sub("", sanitize(line))
    m = _LABEL_LINE.match(cleaned)
    if m is None:
        return None
    field = LABELS.get(m.group(1).upper())
    if field is None:
        return None
    return field, m.group(2).strip()


class SectionReader:
    """Line-oriented state machine collecting labelled sections.

    State is the label currently being captured plus its line buffer.
    Single-line fields take the rest of their label line, or the next
    non-blank line when the label line carries no value.  Multi-line fields
    keep collecting until a blank line or the next recognised label.  Text
    outside any capture is ignored, and the first non-empty capture of a
    field wins.
    """

    def __init__(self) -> None:
        self.sections: dict[str, str] = {}
        self.labels_seen = 0
        self._current: str | None = None
        self._buffer: list[str] = []

    def feed(self, line: str) -> None:
        label = match_label(line)
        if label is not None:
            self._flush()
            self.labels_seen += 1
            field, rest = label
            self._current = field
            if rest:
                self._buffer.append(rest)
                if field not in MULTILINE_FIELDS:
                    self._flush()
            return

        if self._current is None:
            return
        stripped = line.strip()
        if not stripped:
            # a blank line right after a bare label does not end the capture
            if self._buffer:
                self._flush()
            return
        self._buffer.append(stripped)
        if self._current not in MULTILINE_FIELDS:
            self._flush()

    def finish(self) -> dict[str, str]:
        self._flush()
        return self.sections

    def _flush(self) -> None:
        if self._current is not None:
            value = "\n".join(self._buffer).strip()
            if value and self._current not in self.sections:
                self.sections[self._current] = value
        self._current = None
        self._buffer = []


# ---------------------------------------------------------------------------
# Field extraction
# ---------------------------------------------------------------------------

def split_tags(value: str, limit: int = MAX_TAGS) -> list[str]:
    """Split a comma separated capture into at most *limit* tags."""
    tags = [t.strip() for t in sanitize(value).split(",")]
    return [t for t in tags if t][:limit]


def fallback_title(original_input: str) -> str:
    """First sentence of the user's own text, cut to ``TITLE_MAX_LENGTH``.

    Returns ``UNTITLED`` when the input has no usable first sentence.
    """
    if not isinstance(original_input, str):
        return UNTITLED
    first = _SENTENCE_END.split(original_input, maxsplit=1)[0]
    title = sanitize(first)[:TITLE_MAX_LENGTH].strip()
    return title or UNTITLED


def parse_analysis(raw_output: Any, original_input: str = "") -> dict[str, Any]:
    """Extract record fields from an analysis reply.

    Args:
        raw_output: The model's text reply.  None or non-string values are
            parsed as an empty reply.
        original_input: The text the user submitted, used for the title
            fallback.

    Returns:
        Dict with keys:
            - title: labelled title, else the first sentence of
              *original_input* (max 60 chars), else ``UNTITLED``.
            - categories / moods: up to 5 tags each, else [].
            - interpretation: labelled text, else ``DEFAULT_INTERPRETATION``.
            - narrative / visual: labelled text, else "".
            - raw_output: the reply as received ("" for non-strings).
    """
    text = raw_output if isinstance(raw_output, str) else ""
    reader = SectionReader()
    for line in text.splitlines():
        reader.feed(line)
    sections = reader.finish()

    if reader.labels_seen == 0:
        logger.warning(
            "Analysis reply (%d chars) has no recognised labels; using fallbacks.",
            len(text),
        )

    return {
        "title": sanitize(sections.get("title", "")) or fallback_title(original_input),
        "categories": split_tags(sections.get("categories", "")),
        "moods": split_tags(sections.get("moods", "")),
        "interpretation": sanitize(sections.get("interpretation", "")) or DEFAULT_INTERPRETATION,
        "narrative": sanitize(sections.get("narrative", "")),
        "visual": sanitize(sections.get("visual", "")),
        "raw_output": text,
    }


def build_image_prompt(parsed: dict[str, Any], original_input: str = "") -> str:
    """Compose the image generation prompt for a parsed analysis.

    Uses the visual description when present, then the improved narrative,
    then the user's original text.
    """
    base = (
        parsed.get("visual")
        or parsed.get("narrative")
        or (original_input or "").strip()
    )
    base = base.rstrip(" .")
    return f"Dream visualization: {base}. {IMAGE_STYLE_SUFFIX}"
