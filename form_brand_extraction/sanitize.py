"""
Cleanup of model output into syntactically valid JSON.

Models wrap JSON in markdown fences, chat around it, or leave trailing commas.
These helpers undo that without ever inventing content: text that cannot be
repaired is handed back untouched so the caller can report it.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)

_OPENING_FENCE = re.compile(r"^```[\w+-]*[ \t]*\n?")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")


def strip_code_fence(text: str) -> str:
    """Remove a leading ```/```json fence and a trailing ``` fence."""
    trimmed = text.strip()
    if trimmed.startswith("```"):
        trimmed = _OPENING_FENCE.sub("", trimmed, count=1)
    if trimmed.endswith("```"):
        trimmed = trimmed[:-3]
    return trimmed.strip()


def parses(text: str) -> bool:
    try:
        json.loads(text)
    except (TypeError, ValueError):
        return False
    return True


def try_parse(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return None


def truncate_after_last_brace(text: str) -> str:
    last_brace = text.rfind("}")
    if last_brace <= 0 or last_brace == len(text) - 1:
        return text
    trailing = text[last_brace + 1 :].strip()
    if not trailing:
        return text
    logger.info("Removing trailing content after JSON: %r", trailing[:50])
    return text[: last_brace + 1]


def remove_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA.sub(r"\1", text)


_REPAIRS: List[Callable[[str], str]] = [truncate_after_last_brace, remove_trailing_commas]


def sanitize(raw: str) -> str:
    """
    Strip fences and repair common JSON defects.

    Returns the cleaned text when it parses, otherwise `raw` unchanged.
    """
    if not raw:
        return raw

    candidate = strip_code_fence(raw)
    if parses(candidate):
        return candidate

    logger.warning("Model output is not valid JSON, attempting repair")
    for repair in _REPAIRS:
        candidate = repair(candidate)
        if parses(candidate):
            logger.info("JSON repaired with %s", repair.__name__)
            return candidate

    logger.error("Could not repair model output into valid JSON")
    return raw


def _fenced_block(content: str, opening: str, skip_language_tag: bool) -> Optional[str]:
    start = content.find(opening)
    if start == -1:
        return None
    body_start = start + len(opening)
    if skip_language_tag:
        line_end = content.find("\n", body_start)
        if line_end != -1:
            body_start = line_end + 1
    end = content.find("```", body_start)
    if end == -1:
        return None
    return content[body_start:end].strip()


def locate_json_object(content: Optional[str]) -> Optional[str]:
    """
    Find the JSON object inside a conversational reply.

    Tries a ```json block, then any fenced block, then the span from the first
    `{` to the last `}`; falls back to the whole trimmed text.
    """
    if not content:
        return None

    block = _fenced_block(content, "```json", skip_language_tag=False)
    if block is not None:
        return block

    block = _fenced_block(content, "```", skip_language_tag=True)
    if block is not None:
        return block

    brace_start = content.find("{")
    if brace_start != -1:
        brace_end = content.rfind("}")
        if brace_end > brace_start:
            return content[brace_start : brace_end + 1].strip()

    return content.strip()


def tail_fragment(text: str, length: int = 200) -> str:
    """Last `length` characters of `text`, for error diagnostics."""
    if len(text) <= length:
        return text
    return "..." + text[-length:]
