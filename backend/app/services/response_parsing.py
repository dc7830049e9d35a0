"""Tolerant parsing of model JSON responses.

Models often wrap JSON in Markdown fences or leave trailing commas before
closing brackets. Both are removed before decoding; anything still invalid
raises ResponseParseError carrying the start of the cleaned text.
"""

from __future__ import annotations

import json
import re
from typing import TypeVar

import pydantic

from app.core.exceptions import EXCERPT_LENGTH, ResponseParseError
from app.core.logging import get_logger
from app.schemas.analysis import ChapterAnalysis, NovelSummary

logger = get_logger(__name__)

_TRAILING_COMMA = re.compile(r",(\s*[}\]])")

M = TypeVar("M", bound=pydantic.BaseModel)


def clean_json_response(text: str) -> str:
    """Strip code fences and trailing commas from a model response."""
    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[len("```json") :]
    elif cleaned.startswith("```"):
        cleaned = cleaned[len("```") :]
    if cleaned.endswith("```"):
        cleaned = cleaned[: -len("```")]
    cleaned = cleaned.strip()
    return _TRAILING_COMMA.sub(r"\1", cleaned)


def parse_analysis_json(text: str) -> ChapterAnalysis:
    """Parse a chapter (or segment) analysis response."""
    return _parse(text, ChapterAnalysis, "chapter analysis")


def parse_summary_json(text: str) -> NovelSummary:
    """Parse a novel summary response."""
    return _parse(text, NovelSummary, "novel summary")


def _parse(text: str, model: type[M], what: str) -> M:
    cleaned = clean_json_response(text)
    excerpt = cleaned[:EXCERPT_LENGTH]
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        logger.warning("response_parse_failed", target=what, error=str(exc), excerpt=excerpt)
        raise ResponseParseError(
            f"Failed to parse {what} JSON: {exc}. Response starts with: {excerpt}",
            excerpt=cleaned,
        ) from exc

    if not isinstance(data, dict):
        raise ResponseParseError(
            f"Expected a JSON object for {what}, got {type(data).__name__}",
            excerpt=cleaned,
        )

    try:
        return model.model_validate(data)
    except pydantic.ValidationError as exc:
        logger.warning(
            "response_validation_failed",
            target=what,
            errors=exc.error_count(),
            excerpt=excerpt,
        )
        raise ResponseParseError(
            f"{what.capitalize()} JSON does not match the expected shape: {exc}",
            excerpt=cleaned,
        ) from exc
