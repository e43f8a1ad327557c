"""Extract structured items from free-text model output.

Tiers are tried in a fixed order and each one is usable on its own:

1. ``extract_delimited``   -- a fenced ```json block or JSON_START/JSON_END markers
2. ``extract_bare_json``   -- the outermost JSON array/object in the text
3. ``extract_key_values``  -- ``"question": "..."`` / ``"answer": "..."`` pairs
4. ``extract_line_pairs``  -- ``Q: ...`` / ``A: ...`` lines

Quiz questions only use tiers 1-2; a question without its option list is not
worth reconstructing from fragments.
"""

from __future__ import annotations

import json
import re
from typing import Any, Optional

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)
_MARKER_RE = re.compile(r"JSON_START\s*(.*?)\s*JSON_END", re.DOTALL)
_QUESTION_KV_RE = re.compile(r'"(?:question|front)"\s*:\s*"((?:[^"\\]|\\.)*)"')
_ANSWER_KV_RE = re.compile(r'"(?:answer|back)"\s*:\s*"((?:[^"\\]|\\.)*)"')
_Q_LINE_RE = re.compile(r"^\s*(?:\d+[.)]\s*)?(?:Q|Question)\s*[:.-]\s*(.+)$", re.IGNORECASE)
_A_LINE_RE = re.compile(r"^\s*(?:A|Answer)\s*[:.-]\s*(.+)$", re.IGNORECASE)
_LIST_ITEM_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*(.+)$")

_WRAPPER_KEYS = ("flashcards", "cards", "questions", "items", "quiz", "data", "topics", "subtopics")


def _loads(candidate: str) -> Optional[Any]:
    try:
        return json.loads(candidate)
    except (json.JSONDecodeError, TypeError):
        return None


def _unwrap(value: Any) -> Optional[list]:
    """Return a list from a parsed JSON value, looking one level into wrapper objects."""
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        for key in _WRAPPER_KEYS:
            inner = value.get(key)
            if isinstance(inner, list):
                return inner
        return [value]
    return None


def extract_delimited(text: str) -> Optional[list]:
    for pattern in (_MARKER_RE, _FENCE_RE):
        for match in pattern.finditer(text or ""):
            parsed = _loads(match.group(1).strip())
            items = _unwrap(parsed)
            if items is not None:
                return items
    return None


def extract_bare_json(text: str) -> Optional[list]:
    cleaned = (text or "").strip()
    if not cleaned:
        return None

    parsed = _loads(cleaned)
    if parsed is not None:
        return _unwrap(parsed)

    start = cleaned.find("[")
    end = cleaned.rfind("]")
    if start != -1 and end > start:
        items = _unwrap(_loads(cleaned[start : end + 1]))
        if items is not None:
            return items

    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end > start:
        items = _unwrap(_loads(cleaned[start : end + 1]))
        if items is not None:
            return items

    # Truncated array: the model stopped before closing it
    bracket = cleaned.find("[")
    if bracket != -1:
        tail = cleaned[bracket:]
        for suffix in ("]", "}]", '"}]'):
            items = _unwrap(_loads(tail + suffix))
            if items is not None:
                return items
    return None


def _unescape(value: str) -> str:
    try:
        return json.loads(f'"{value}"')
    except json.JSONDecodeError:
        return value


def extract_key_values(text: str) -> Optional[list[dict[str, str]]]:
    questions = [_unescape(m) for m in _QUESTION_KV_RE.findall(text or "")]
    answers = [_unescape(m) for m in _ANSWER_KV_RE.findall(text or "")]
    pairs = [
        {"question": q, "answer": a} for q, a in zip(questions, answers)
    ]
    return pairs or None


def extract_line_pairs(text: str) -> Optional[list[dict[str, str]]]:
    pairs: list[dict[str, str]] = []
    pending: Optional[str] = None
    for line in (text or "").splitlines():
        q = _Q_LINE_RE.match(line)
        if q:
            pending = q.group(1).strip()
            continue
        a = _A_LINE_RE.match(line)
        if a and pending:
            pairs.append({"question": pending, "answer": a.group(1).strip()})
            pending = None
    return pairs or None


def parse_cards(text: str) -> list[dict[str, Any]]:
    """Parse raw card dicts from model output, or ``[]`` if every tier fails."""
    for tier in (extract_delimited, extract_bare_json, extract_key_values, extract_line_pairs):
        items = tier(text)
        if items:
            return [i for i in items if isinstance(i, dict)]
    return []


def parse_questions(text: str) -> list[dict[str, Any]]:
    for tier in (extract_delimited, extract_bare_json):
        items = tier(text)
        if items:
            return [i for i in items if isinstance(i, dict)]
    return []


def parse_string_list(text: str) -> list[str]:
    """Parse a list of short strings (JSON array first, then bullet/numbered lines)."""
    for tier in (extract_delimited, extract_bare_json):
        items = tier(text)
        if items:
            out = []
            for i in items:
                if isinstance(i, str):
                    out.append(i.strip())
                elif isinstance(i, dict):
                    name = i.get("name") or i.get("topic") or i.get("title")
                    if name:
                        out.append(str(name).strip())
            out = [s for s in out if s]
            if out:
                return out

    lines = []
    for line in (text or "").splitlines():
        m = _LIST_ITEM_RE.match(line)
        if m:
            lines.append(m.group(1).strip().strip('"'))
    return [s for s in lines if s]


def first_line(text: str) -> str:
    """Return the first non-empty line, stripped of quotes; used for search queries."""
    for line in (text or "").splitlines():
        s = line.strip().strip('"').strip("'").strip()
        if s:
            return s
    return ""
