"""Recovery of structured values from free-form model output.

Every stage is a pure function of text returning a ParseResult. Stages never
raise on malformed input; callers decide when a failure becomes an exception
by calling ``ParseResult.unwrap()``.
"""

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Sequence, Type, TypeVar

from app.errors import AutomationError, EmptyResultError, MissingFieldError, ParseError
from app.schemas.generation import Idea, PromptResult

T = TypeVar("T")

MAX_TITLE_LENGTH = 60
TITLE_WORD_BOUNDARY = 40
MAX_ARRAY_SCAN_ATTEMPTS = 50

QUOTE_CHARS = "\"'«»“”„"

_CODE_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?```$", re.DOTALL)
_TAG_RE = re.compile(r"[#@]\w+")
_EMOJI_RE = re.compile(
    "["
    "\U0001F000-\U0001F2FF"  # mahjong, cards, enclosed alphanumerics, flags
    "\U0001F300-\U0001F5FF"  # symbols & pictographs
    "\U0001F600-\U0001F64F"  # emoticons
    "\U0001F680-\U0001F6FF"  # transport & map
    "\U0001F700-\U0001FAFF"  # extended pictographs
    "\u2300-\u23FF"  # technical: watches, hourglasses
    "\u2600-\u27BF"  # misc symbols, dingbats
    "\u2B00-\u2BFF"  # arrows, stars
    "\u20E3"  # keycap
    "\U000E0020-\U000E007F"  # tag sequences
    "\uFE0F"  # variation selector
    "\u200D"  # zero width joiner
    "]"
)
_WHITESPACE_RE = re.compile(r"\s+")

_PROMPT_FIELD_PATTERNS = (
    re.compile(r"(?:veo_prompt|veoPrompt)[\"\s:]+\"([^\"]+)\"", re.IGNORECASE),
    re.compile(r"(?:veo_prompt|veoPrompt)[\"\s:]+([^\n}]+)", re.IGNORECASE),
)
_TITLE_FIELD_PATTERNS = (
    re.compile(r"(?:video_title|videoTitle)[\"\s:]+\"([^\"]+)\"", re.IGNORECASE),
    re.compile(r"(?:video_title|videoTitle)[\"\s:]+([^\n}]+)", re.IGNORECASE),
)


class ParseStatus(str, Enum):
    OK = "ok"
    NEEDS_FALLBACK = "needs_fallback"
    FAILED = "failed"


@dataclass(frozen=True)
class ParseResult(Generic[T]):
    """Tagged outcome of one parsing stage."""

    status: ParseStatus
    value: Optional[T] = None
    raw_text: str = ""
    reason: str = ""
    error_cls: Type[AutomationError] = ParseError
    field: str = ""

    @classmethod
    def ok(cls, value: T) -> "ParseResult[T]":
        return cls(status=ParseStatus.OK, value=value)

    @classmethod
    def needs_fallback(cls, raw_text: str) -> "ParseResult[T]":
        return cls(status=ParseStatus.NEEDS_FALLBACK, raw_text=raw_text)

    @classmethod
    def failed(
        cls,
        reason: str,
        error_cls: Type[AutomationError] = ParseError,
        raw_text: str = "",
        field: str = "",
    ) -> "ParseResult[T]":
        return cls(status=ParseStatus.FAILED, reason=reason, error_cls=error_cls, raw_text=raw_text, field=field)

    @property
    def is_ok(self) -> bool:
        return self.status is ParseStatus.OK

    def unwrap(self) -> T:
        """Return the value or raise the typed error this result carries."""
        if self.is_ok:
            return self.value
        if self.status is ParseStatus.NEEDS_FALLBACK:
            raise ParseError("no fallback stage accepted the response", raw_text=self.raw_text)
        if issubclass(self.error_cls, ParseError):
            raise self.error_cls(self.reason, raw_text=self.raw_text)
        if issubclass(self.error_cls, MissingFieldError):
            raise self.error_cls(self.reason, field=self.field)
        raise self.error_cls(self.reason)


def strip_code_fence(text: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    stripped = text.strip()
    match = _CODE_FENCE_RE.match(stripped)
    return match.group(1).strip() if match else stripped


def parse_json_document(text: str) -> ParseResult[Any]:
    """Parse the whole text as JSON, tolerating a markdown code fence."""
    if not isinstance(text, str) or not text.strip():
        return ParseResult.needs_fallback(text if isinstance(text, str) else "")

    for candidate in (text.strip(), strip_code_fence(text)):
        try:
            return ParseResult.ok(json.loads(candidate))
        except (ValueError, RecursionError):
            continue

    return ParseResult.needs_fallback(text)


def extract_json_array(text: str) -> ParseResult[List[Any]]:
    """
    Find the first bracket-delimited JSON array embedded in free text.

    Tries decoding from each '[' in order, then the greedy slice from the
    first '[' to the last ']'.
    """
    decoder = json.JSONDecoder()
    start = text.find("[")
    attempts = 0

    while start != -1 and attempts < MAX_ARRAY_SCAN_ATTEMPTS:
        attempts += 1
        try:
            value, _ = decoder.raw_decode(text, start)
        except (ValueError, RecursionError):
            value = None
        if isinstance(value, list):
            return ParseResult.ok(value)
        start = text.find("[", start + 1)

    first, last = text.find("["), text.rfind("]")
    if first != -1 and last > first:
        try:
            value = json.loads(text[first:last + 1])
        except (ValueError, RecursionError):
            value = None
        if isinstance(value, list):
            return ParseResult.ok(value)

    return ParseResult.failed("could not parse JSON response", raw_text=text)


def locate_idea_array(value: Any) -> ParseResult[List[Any]]:
    """Find the idea list inside a parsed response."""
    if isinstance(value, list):
        return ParseResult.ok(value)

    if isinstance(value, dict):
        for key in ("ideas", "data"):
            if isinstance(value.get(key), list):
                return ParseResult.ok(value[key])
        for item in value.values():
            if isinstance(item, list):
                return ParseResult.ok(item)

    return ParseResult.failed("array not found")


def _first_text(item: Dict[str, Any], keys: Sequence[str]) -> str:
    for key in keys:
        value = item.get(key)
        if value is None or isinstance(value, (dict, list)):
            continue
        text = value if isinstance(value, str) else str(value)
        if text:
            return text
    return ""


def map_ideas(items: Sequence[Any], count: int, timestamp_ms: int) -> ParseResult[List[Idea]]:
    """
    Map raw array elements to Idea values.

    Args:
        items: Parsed array elements
        count: Maximum number of ideas to keep
        timestamp_ms: Generation timestamp used to synthesize ids

    Returns:
        OK with at most ``count`` ideas, or FAILED with EmptyResultError
    """
    ideas = []
    for index, item in enumerate(list(items)[:max(count, 0)]):
        if isinstance(item, str) and item.strip():
            item = {"title": item}
        elif not isinstance(item, dict):
            item = {}

        ideas.append(
            Idea(
                id=f"idea_{timestamp_ms}_{index}",
                title=_first_text(item, ("title", "name")) or f"Idea {index + 1}",
                description=_first_text(item, ("description", "text")),
            )
        )

    if not ideas:
        return ParseResult.failed("no ideas in model response", error_cls=EmptyResultError)
    return ParseResult.ok(ideas)


def extract_ideas(text: str, count: int, timestamp_ms: int) -> ParseResult[List[Idea]]:
    """Run the full idea-extraction chain over raw model text."""
    parsed = parse_json_document(text)
    if not parsed.is_ok:
        parsed = extract_json_array(text or "")
        if not parsed.is_ok:
            return parsed

    located = locate_idea_array(parsed.value)
    if not located.is_ok:
        return ParseResult.failed(located.reason, raw_text=text or "")

    return map_ideas(located.value, count, timestamp_ms)


def _match_first(patterns, text: str) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            value = match.group(1).strip().rstrip(",").strip().strip("\"'")
            if value:
                return value
    return None


def match_prompt_fields(text: str) -> ParseResult[Dict[str, str]]:
    """Pull veo_prompt and video_title out of text that is not valid JSON."""
    if not isinstance(text, str):
        return ParseResult.failed("could not parse JSON response")

    prompt = _match_first(_PROMPT_FIELD_PATTERNS, text)
    title = _match_first(_TITLE_FIELD_PATTERNS, text)

    if prompt is None or title is None:
        return ParseResult.failed("could not parse JSON response", raw_text=text)
    return ParseResult.ok({"veo_prompt": prompt, "video_title": title})


def extract_prompt(text: str, fallback_title: str) -> ParseResult[PromptResult]:
    """
    Run the full prompt-extraction chain over raw model text.

    Args:
        text: Raw model output
        fallback_title: Title used when the response carries none

    Returns:
        OK with a PromptResult, or FAILED with ParseError / MissingFieldError
    """
    parsed = parse_json_document(text)
    if not parsed.is_ok:
        parsed = match_prompt_fields(text)
        if not parsed.is_ok:
            return parsed

    data = parsed.value
    if not isinstance(data, dict):
        return ParseResult.failed("expected a JSON object", raw_text=text)

    veo_prompt = _first_text(data, ("veo_prompt", "veoPrompt", "prompt")).strip()
    video_title = (_first_text(data, ("video_title", "videoTitle", "title")) or fallback_title or "").strip()

    if not veo_prompt:
        return ParseResult.failed(
            "veo_prompt missing from model response",
            error_cls=MissingFieldError,
            field="veo_prompt",
        )

    return ParseResult.ok(PromptResult(veo_prompt=veo_prompt, video_title=video_title))


def clean_title(raw: str) -> str:
    """
    Normalize a model-written title regardless of prompt compliance.

    Strips surrounding quotes, hashtag/mention tokens and emoji, then caps the
    length at 60 characters, backing off to a word boundary past position 40.
    """
    title = (raw or "").strip().strip(QUOTE_CHARS).strip()
    title = _TAG_RE.sub("", title)
    title = _EMOJI_RE.sub("", title)
    title = _WHITESPACE_RE.sub(" ", title).strip().strip(QUOTE_CHARS).strip()

    if len(title) > MAX_TITLE_LENGTH:
        title = title[:MAX_TITLE_LENGTH].strip()
        last_space = title.rfind(" ")
        if last_space > TITLE_WORD_BOUNDARY:
            title = title[:last_space]

    return title
