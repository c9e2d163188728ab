"""Interpretation of free-text model output.

Everything here is pure and total: malformed input yields ``None`` fields,
never an exception, so the caller makes exactly one fallback decision.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any


logger = logging.getLogger(__name__)


_THINK_OPEN_RE = re.compile(r"<think>", re.IGNORECASE)
_THINK_CLOSE_RE = re.compile(r"</think>", re.IGNORECASE)
_JSON_FENCE_RE = re.compile(r"```[ \t]*json", re.IGNORECASE)
_FENCE_LABEL_RE = re.compile(r"[\w+.-]*")

_FENCE = "```"


@dataclass(frozen=True)
class ParsedResponse:
    reasoning: str | None
    payload: dict[str, Any] | None


def extract_reasoning(text: str) -> str | None:
    m = _THINK_OPEN_RE.search(text)
    if not m:
        return None
    start = m.end()

    ends: list[int] = []
    close = _THINK_CLOSE_RE.search(text, start)
    if close:
        ends.append(close.start())
    fence = _JSON_FENCE_RE.search(text, start)
    if fence:
        ends.append(fence.start())
    end = min(ends) if ends else len(text)

    reasoning = text[start:end].strip()
    return reasoning or None


def fenced_blocks(text: str) -> list[tuple[str, str]]:
    """Return ``(label, body)`` for each fenced block, in order.

    An unterminated fence (truncated output) runs to the end of the text.
    """
    blocks: list[tuple[str, str]] = []
    pos = 0
    while True:
        start = text.find(_FENCE, pos)
        if start < 0:
            break
        body_start = start + len(_FENCE)
        label = ""
        newline = text.find("\n", body_start)
        if newline >= 0:
            candidate = text[body_start:newline].strip()
            if _FENCE_LABEL_RE.fullmatch(candidate):
                label = candidate.lower()
                body_start = newline + 1
        close = text.find(_FENCE, body_start)
        if close < 0:
            blocks.append((label, text[body_start:]))
            break
        blocks.append((label, text[body_start:close]))
        pos = close + len(_FENCE)
    return blocks


def _match_brace(text: str, start: int) -> int | None:
    """Index of the ``}`` closing the ``{`` at ``start``, honouring JSON strings."""
    depth = 0
    in_str = False
    escaped = False
    for idx in range(start, len(text)):
        ch = text[idx]
        if in_str:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            in_str = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return idx
    return None


def balanced_objects(text: str) -> tuple[list[str], int | None]:
    """Every balanced ``{...}`` span, nested ones included, ordered by where
    it closes, plus the first unterminated ``{``."""
    found: list[tuple[int, str]] = []
    unterminated: int | None = None
    idx = text.find("{")
    while idx >= 0:
        end = _match_brace(text, idx)
        if end is None:
            if unterminated is None:
                unterminated = idx
        else:
            found.append((end, text[idx : end + 1]))
        idx = text.find("{", idx + 1)
    found.sort(key=lambda pair: pair[0])
    return [span for _, span in found], unterminated


def _loads_object(candidate: str) -> dict[str, Any] | None:
    try:
        data = json.loads(candidate)
    except (json.JSONDecodeError, ValueError, RecursionError):
        return None
    return data if isinstance(data, dict) else None


def repair_truncated(fragment: str) -> dict[str, Any] | None:
    """Best-effort close of a JSON object cut off mid-stream."""
    stack: list[str] = []
    in_str = False
    escaped = False
    last_comma: tuple[int, list[str]] | None = None
    for idx, ch in enumerate(fragment):
        if in_str:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            in_str = True
        elif ch == "{":
            stack.append("}")
        elif ch == "[":
            stack.append("]")
        elif ch in "}]":
            if not stack:
                return None
            stack.pop()
            if not stack:
                # balanced: not a truncation problem
                return None
        elif ch == ",":
            last_comma = (idx, list(stack))

    if not stack:
        return None

    attempts = [fragment.rstrip() + ('"' if in_str else "") + "".join(reversed(stack))]
    if last_comma is not None:
        cut, open_at_cut = last_comma
        attempts.append(fragment[:cut] + "".join(reversed(open_at_cut)))

    for attempt in attempts:
        data = _loads_object(attempt)
        if data is not None:
            return data
    return None


def _scan_for_object(text: str) -> dict[str, Any] | None:
    spans, unterminated = balanced_objects(text)
    for candidate in reversed(spans):
        data = _loads_object(candidate)
        if data is not None:
            return data
    if unterminated is not None:
        return repair_truncated(text[unterminated:])
    return None


def extract_json(text: str) -> dict[str, Any] | None:
    blocks = fenced_blocks(text)

    json_blocks = [body for label, body in blocks if label == "json"]
    other_blocks = [body for label, body in blocks if label != "json"]

    for body in json_blocks + other_blocks:
        data = _loads_object(body.strip())
        if data is not None:
            return data

    for body in json_blocks + other_blocks:
        data = _scan_for_object(body)
        if data is not None:
            return data

    return _scan_for_object(text)


def parse_response(raw: str | None) -> ParsedResponse:
    text = raw if isinstance(raw, str) else ""
    if not text.strip():
        return ParsedResponse(reasoning=None, payload=None)

    try:
        reasoning = extract_reasoning(text)
    except Exception:  # pragma: no cover
        logger.exception("reasoning extraction failed")
        reasoning = None

    try:
        payload = extract_json(text)
    except Exception:  # pragma: no cover
        logger.exception("json extraction failed")
        payload = None

    return ParsedResponse(reasoning=reasoning, payload=payload)
