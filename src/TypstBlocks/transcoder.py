"""Public entry points: Typst markup to blocks and back."""

from __future__ import annotations

import logging
from typing import List

from .cleanup import cleanup_markup
from .model import Block, Document
from .parser import Registry, parse_lines
from .recognizers import DEFAULT_REGISTRY
from .serializer import serialize, serialize_document
from .settings import strip_header

logger = logging.getLogger(__name__)

__all__ = ["parse", "parse_document", "serialize", "serialize_document"]


def parse_document(text: str, registry: Registry = DEFAULT_REGISTRY) -> Document:
    settings, body = strip_header(text or "")
    blocks = parse_lines(cleanup_markup(body), registry)
    logger.debug("Parsed %d top-level blocks", len(blocks))
    return Document(blocks=blocks, settings=settings)


def parse(text: str, registry: Registry = DEFAULT_REGISTRY) -> List[Block]:
    """Blocks of ``text``; a settings header, if any, is dropped."""
    return parse_document(text, registry).blocks
