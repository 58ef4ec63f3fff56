"""
Tolerant parsing of LLM classification output

Models wrap JSON in markdown fences, add prose around it, leave trailing
commas or return a whole chat-completion envelope as content. Parsing is two
steps: find and load the root JSON value, then normalise it into a
ClassificationResult.
"""
import json
import math
import re
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ValidationError, field_validator

from news_analyzer.domain import ClassificationResult
from news_analyzer.exceptions import InvalidResponse

# , ， 、 | ｜ / \
TAG_SEPARATOR = re.compile(r"[,，、|｜/\\]\s*")
KEYWORD_SEPARATOR = re.compile(r"[,，、|｜;；\n]\s*")
TRAILING_COMMA = re.compile(r",\s*([}\]])")
LINE_COMMENT = re.compile(r"^\s*//.*$", re.MULTILINE)
BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)


def strip_fences(text: str) -> str:
    """Remove a surrounding markdown code fence"""
    text = re.sub(r'^```(?:json)?\s*', '', text.strip())
    text = re.sub(r'\s*```$', '', text.strip())
    return text.strip()


def unwrap_chat_envelope(text: str) -> str:
    """Return message content if `text` is a whole chat-completion response"""
    stripped = text.lstrip()
    if not stripped.startswith('{') or '"choices"' not in stripped:
        return text
    try:
        data = json.loads(stripped)
        return data["choices"][0]["message"]["content"]
    except (json.JSONDecodeError, KeyError, IndexError, TypeError):
        return text


def extract_root_json(text: str) -> Optional[str]:
    """
    First balanced top-level JSON object or array in `text`

    Brackets inside string literals are ignored.
    """
    in_string = False
    escaped = False
    depth = 0
    start = None

    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            if depth > 0:
                in_string = True
        elif ch in '{[':
            if depth == 0:
                start = i
            depth += 1
        elif ch in '}]' and depth > 0:
            depth -= 1
            if depth == 0:
                return text[start:i + 1]

    return None


def loads_lenient(text: str) -> Any:
    """json.loads, retrying once without comments and trailing commas"""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    cleaned = BLOCK_COMMENT.sub('', text)
    cleaned = LINE_COMMENT.sub('', cleaned)
    cleaned = TRAILING_COMMA.sub(r'\1', cleaned)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise InvalidResponse(f"LLM returned malformed JSON: {e}") from e


def split_tags(value: str) -> List[str]:
    return [tag.strip() for tag in TAG_SEPARATOR.split(value) if tag.strip()]


def _collect_tags(*values: Union[str, List[str], None]) -> List[str]:
    tags = []
    for value in values:
        if not value:
            continue
        if isinstance(value, str):
            tags.extend(split_tags(value))
        else:
            tags.extend(str(item).strip() for item in value if str(item).strip())
    return sorted(set(tags))


class RawClassification(BaseModel):
    """Shape accepted from the model before normalisation"""

    summary: str
    is_soft_news: bool = False
    industry_type: Union[str, List[str], None] = None
    industries: Optional[List[str]] = None
    news_type: Union[str, List[str], None] = None
    types: Optional[List[str]] = None
    confidence: Optional[float] = None
    keywords: Union[str, List[str], None] = None

    @field_validator('summary')
    @classmethod
    def summary_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('summary is empty')
        return v.strip()

    @field_validator('is_soft_news', mode='before')
    @classmethod
    def coerce_soft_news(cls, v):
        if v is None:
            return False
        if isinstance(v, str):
            return v.strip().lower() in ('true', 'yes', '1', 'soft')
        return v


def _clamp_confidence(value: Optional[float]) -> float:
    if value is None or math.isnan(value):
        return 0.0
    return min(1.0, max(0.0, float(value)))


def _select_item(payload: Any) -> dict:
    if isinstance(payload, list):
        payload = payload[0] if payload else None
    if not isinstance(payload, dict):
        raise InvalidResponse("LLM response is not a JSON object")

    # Multi-item shape: {"has_news": ..., "news_list": [...], ...}
    if "summary" not in payload and "news_list" in payload:
        items = payload.get("news_list") or []
        if not items or not isinstance(items[0], dict):
            raise InvalidResponse("LLM response contains no news item")
        return items[0]
    return payload


def parse_classification(content: str) -> ClassificationResult:
    """
    Parse raw model output into a ClassificationResult

    Raises:
        InvalidResponse: no JSON found, malformed JSON, or required fields missing
    """
    if not content or not content.strip():
        raise InvalidResponse("LLM returned empty content")

    text = strip_fences(unwrap_chat_envelope(content))
    root = extract_root_json(text)
    if root is None:
        raise InvalidResponse("No JSON object found in LLM response")

    item = _select_item(loads_lenient(root))

    try:
        raw = RawClassification.model_validate(item)
    except ValidationError as e:
        raise InvalidResponse(f"LLM response failed validation: {e.errors()[0]['msg']}") from e

    if isinstance(raw.keywords, str):
        keywords = [k.strip() for k in KEYWORD_SEPARATOR.split(raw.keywords)]
    else:
        keywords = [str(k).strip() for k in raw.keywords or []]

    return ClassificationResult(
        summary=raw.summary,
        is_soft_news=raw.is_soft_news,
        industry_type=", ".join(_collect_tags(raw.industries, raw.industry_type)),
        news_type=", ".join(_collect_tags(raw.types, raw.news_type)),
        confidence=_clamp_confidence(raw.confidence),
        keywords=frozenset(k for k in keywords if k),
    )
