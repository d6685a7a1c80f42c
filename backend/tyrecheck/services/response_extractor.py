"""
Extracts the JSON object embedded in a backend's free-form reply.

Backends frequently wrap the object in prose or markdown fences:

    Here is my analysis: {"a": 1}
    Thanks.

Brace-balanced spans are collected in a single pass and tried in order of
their opening brace; braces inside string literals (including escaped
quotes) do not count. The first span that parses as a JSON object wins.
"""
import json
import logging
import re
from typing import Any, Dict, Iterator, List, Tuple

from tyrecheck.core.exceptions import NoJsonFoundError
from tyrecheck.core.logging_config import sanitize_log_value

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def _balanced_spans(text: str) -> List[Tuple[int, int]]:
    """
    (open, close) index pairs of every brace-balanced span, found in one pass.

    Quotes only open a string literal inside an open brace, so stray quotes in
    surrounding prose do not hide the object that follows. Unclosed braces are
    simply left on the stack.
    """
    spans: List[Tuple[int, int]] = []
    stack: List[int] = []
    in_string = False
    escaped = False

    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"' and stack:
            in_string = True
        elif char == "{":
            stack.append(index)
        elif char == "}" and stack:
            spans.append((stack.pop(), index))
    return spans


def iter_candidates(text: str) -> Iterator[str]:
    """Yield balanced '{...}' spans in order of their opening brace"""
    for start, end in sorted(_balanced_spans(text)):
        yield text[start:end + 1]


def collapse_whitespace(span: str) -> str:
    return _WHITESPACE_RE.sub(" ", span).strip()


def extract_json_text(raw_text: str) -> str:
    """
    Return the first JSON-object substring of a reply, whitespace-collapsed.

    Raises:
        NoJsonFoundError: If no span parses as a JSON object
    """
    for span in iter_candidates(raw_text or ""):
        candidate = collapse_whitespace(span)
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return candidate

    logger.warning(
        "No JSON object found in analysis reply",
        extra={
            "event_type": "response_no_json",
            "response_length": len(raw_text or ""),
            "response_preview": sanitize_log_value(raw_text or "", max_length=200),
        }
    )
    raise NoJsonFoundError("Analysis response did not contain a JSON object")


def extract_json(raw_text: str) -> Dict[str, Any]:
    """Like extract_json_text(), but returns the parsed object"""
    return json.loads(extract_json_text(raw_text))
