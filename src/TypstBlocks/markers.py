"""Comment-shaped side-channel tokens: ``/*TAG:<base64 JSON>*/``."""

from __future__ import annotations

import base64
import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

TABLE = "TABLE"
IMAGE = "IMAGE"
CHART = "CHART"
MATH = "MATH"
COMPOSITE_ROW = "COMPOSITE_ROW"
COVER_BEGIN = "COVER_BEGIN"
INPUT = "INPUT"
VSPACE = "VSPACE"
DOC = "DOC"

ANSWER_MARKER = "/*ANSWER*/"
COVER_END_MARKER = "/*COVER_END*/"
EMPTY_PAR_MARKER = "/*EMPTY_PAR*/"

_TOKEN_RES: dict[str, re.Pattern[str]] = {}


def _token_re(tag: str) -> re.Pattern[str]:
    pattern = _TOKEN_RES.get(tag)
    if pattern is None:
        # Loose capture so a damaged payload is still found and reported as undecodable.
        pattern = re.compile(r"/\*" + re.escape(tag) + r":([^*\s]*)\*/")
        _TOKEN_RES[tag] = pattern
    return pattern


def encode_payload(payload: Any) -> str:
    raw = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def decode_payload(data: str) -> Any | None:
    try:
        raw = base64.b64decode(data, validate=True)
        return json.loads(raw.decode("utf-8"))
    except ValueError as exc:
        logger.debug("Undecodable marker payload %r: %s", data[:40], exc)
        return None


def encode(tag: str, payload: Any) -> str:
    return f"/*{tag}:{encode_payload(payload)}*/"


def has_token(tag: str, text: str) -> bool:
    return f"/*{tag}:" in text


def find_token(tag: str, text: str) -> re.Match[str] | None:
    return _token_re(tag).search(text)


def decode(tag: str, text: str) -> Any | None:
    """Return the payload of the first ``tag`` token in ``text``, or None."""
    match = find_token(tag, text)
    if match is None:
        return None
    return decode_payload(match.group(1))


def strip(tag: str, text: str) -> str:
    return _token_re(tag).sub("", text)


def trailing_token(tag: str, text: str) -> re.Match[str] | None:
    """The ``tag`` token that ends ``text``, or None when something else does."""
    text = text.rstrip()
    if not text.endswith("*/"):
        return None
    last = None
    for last in _token_re(tag).finditer(text):
        pass
    return last if last is not None and last.end() == len(text) else None


def count_tokens(tag: str, text: str) -> int:
    return text.count(f"/*{tag}:")
