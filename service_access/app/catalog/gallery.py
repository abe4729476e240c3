"""
Gallery assembly for catalog reads.

Stores hand back a product's media as one string: each item serialized as a
JSON object and the objects joined with ",". Field values are arbitrary URLs
and may contain "," or "},{" themselves, so the string is walked record by
record with a JSON decoder rather than split on delimiters.
"""

import json
from typing import Any, List, Optional

from shared.errors import ParseAnomaly
from shared.logging import get_logger

from .models import MediaItem

logger = get_logger("access.catalog.gallery")

_decoder = json.JSONDecoder()
_WHITESPACE = " \t\n\r"
_FRAGMENT_CHARS = 120


def _skip_whitespace(raw: str, pos: int) -> int:
    while pos < len(raw) and raw[pos] in _WHITESPACE:
        pos += 1
    return pos


def _skip_separators(raw: str, pos: int) -> int:
    while pos < len(raw) and (raw[pos] in _WHITESPACE or raw[pos] == ","):
        pos += 1
    return pos


def _next_record_start(raw: str, pos: int) -> int:
    """Position of the next "{" that follows a separator, or len(raw)."""
    while True:
        brace = raw.find("{", pos)
        if brace == -1:
            return len(raw)
        before = brace - 1
        while before >= 0 and raw[before] in _WHITESPACE:
            before -= 1
        if before < 0 or raw[before] == ",":
            return brace
        pos = brace + 1


def _decode_item(raw: str, pos: int):
    """Decode one record at `pos`. Returns (item, next_pos); raises ParseAnomaly with resume position."""
    try:
        record, end = _decoder.raw_decode(raw, pos)
    except json.JSONDecodeError as e:
        raise ParseAnomaly(
            f"undecodable record: {e.msg}",
            raw[pos:pos + _FRAGMENT_CHARS],
            resume_at=_next_record_start(raw, pos + 1),
        )

    tail = _skip_whitespace(raw, end)
    if tail < len(raw) and raw[tail] != ",":
        raise ParseAnomaly(
            "unexpected data after record",
            raw[pos:tail + 1][:_FRAGMENT_CHARS],
            resume_at=_next_record_start(raw, end),
        )

    if not isinstance(record, dict):
        raise ParseAnomaly("record is not an object", record, resume_at=tail)

    try:
        item = MediaItem.from_record(record)
    except (TypeError, ValueError) as e:
        raise ParseAnomaly(f"invalid media item: {e}", record, resume_at=tail)

    return item, tail


def assemble_gallery(raw: Optional[str], product_id: Any = None) -> List[MediaItem]:
    """Decode a concatenated media string into items ordered by ordinal.

    Items that fail to decode or validate are logged and dropped; the rest
    are kept. Empty or missing input yields an empty list.
    """
    if not raw or not raw.strip():
        return []

    items: List[MediaItem] = []
    pos = _skip_separators(raw, 0)
    while pos < len(raw):
        try:
            item, pos = _decode_item(raw, pos)
        except ParseAnomaly as anomaly:
            logger.warning(
                "Dropping unparseable gallery item",
                product_id=product_id,
                reason=anomaly.reason,
                fragment=str(anomaly.fragment)[:_FRAGMENT_CHARS],
            )
            pos = anomaly.resume_at
        else:
            items.append(item)
        pos = _skip_separators(raw, pos)

    return order_gallery(items)


def order_gallery(items: List[MediaItem]) -> List[MediaItem]:
    """Sort by ordinal ascending; equal ordinals keep their incoming order."""
    return sorted(items, key=lambda item: item.ordinal)


def serialize_gallery(items: List[MediaItem]) -> str:
    """Inverse of assemble_gallery for a well-formed list."""
    return ",".join(json.dumps(item.to_dict()) for item in items)
