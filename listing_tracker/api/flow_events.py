"""Decoding of storefront events returned by the Flow REST gateway.

Event payloads are base64-encoded JSON-Cadence documents:

    {"type": "Event", "value": {"id": "...", "fields": [
        {"name": "nftID", "value": {"type": "UInt64", "value": "123"}}, ...]}}

They are flattened into ``{field name -> plain value}`` maps and then read
into the typed event shapes below.
"""

from __future__ import annotations

import base64
import binascii
import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

LISTING_AVAILABLE = "ListingAvailable"
LISTING_COMPLETED = "ListingCompleted"
LISTING_REMOVED = "ListingRemoved"
EVENT_KINDS = (LISTING_AVAILABLE, LISTING_COMPLETED, LISTING_REMOVED)


class EventDecodeError(ValueError):
    """An event payload did not have the expected shape."""


@dataclass(frozen=True)
class RawEvent:
    """One event as delivered by the gateway, payload still encoded."""

    event_type: str
    block_height: int
    transaction_index: int
    event_index: int
    payload: Union[str, dict]
    block_timestamp: Optional[datetime] = None

    @property
    def kind(self) -> str:
        return self.event_type.rsplit(".", 1)[-1]

    @property
    def sort_key(self) -> tuple[int, int, int]:
        return (self.block_height, self.transaction_index, self.event_index)


@dataclass(frozen=True)
class ListingAvailable:
    item_id: Optional[str]
    listing_ref: Optional[str]
    price: Optional[Decimal]
    seller_address: Optional[str]
    nft_type: str
    group_id: Optional[str]
    block_height: int
    listed_at: Optional[datetime]


@dataclass(frozen=True)
class ListingCompleted:
    item_id: Optional[str]
    listing_ref: Optional[str]
    purchased: bool
    block_height: int


@dataclass(frozen=True)
class ListingRemoved:
    item_id: Optional[str]
    listing_ref: Optional[str]
    block_height: int


DecodedEvent = Union[ListingAvailable, ListingCompleted, ListingRemoved]


_FRACTION_RE = re.compile(r"\.(\d+)")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a gateway timestamp (RFC 3339, nanosecond precision) as naive UTC."""
    if not value:
        return None
    try:
        # fromisoformat wants exactly microsecond precision on older interpreters
        trimmed = _FRACTION_RE.sub(
            lambda m: "." + m.group(1)[:6].ljust(6, "0"),
            value.replace("Z", "+00:00"),
            count=1,
        )
        parsed = datetime.fromisoformat(trimmed)
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _cadence_value(node: Any) -> Any:
    """Unwrap one JSON-Cadence value into a plain Python value."""
    if not isinstance(node, dict) or "type" not in node:
        return node

    kind = node.get("type")
    value = node.get("value")

    if kind == "Optional":
        return _cadence_value(value) if value is not None else None
    if kind == "Type":
        static = (value or {}).get("staticType") if isinstance(value, dict) else value
        if isinstance(static, dict):
            return static.get("typeID") or ""
        return static or ""
    if kind == "Array":
        return [_cadence_value(v) for v in value or []]
    if kind == "Dictionary":
        return {str(_cadence_value(e.get("key"))): _cadence_value(e.get("value")) for e in value or []}
    if kind in ("Struct", "Resource", "Event", "Enum"):
        return fields_to_map((value or {}).get("fields") or [])
    return value


def fields_to_map(fields: list) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for field in fields:
        if not isinstance(field, dict) or "name" not in field:
            raise EventDecodeError(f"Malformed field entry: {field!r}")
        try:
            out[field["name"]] = _cadence_value(field.get("value"))
        except (AttributeError, TypeError, ValueError) as e:
            raise EventDecodeError(f"Malformed value for field {field['name']!r}: {e}") from e
    return out


def decode_payload(payload: Union[str, bytes, dict]) -> dict[str, Any]:
    """Decode an event payload into a flat ``{name: value}`` map."""
    try:
        if isinstance(payload, (str, bytes)):
            data = json.loads(base64.b64decode(payload))
        else:
            data = payload
        fields = data["value"]["fields"]
    except (binascii.Error, json.JSONDecodeError, UnicodeDecodeError, KeyError, TypeError) as e:
        raise EventDecodeError(f"Undecodable payload: {e}") from e

    if not isinstance(fields, list):
        raise EventDecodeError("Event fields are not a list")
    return fields_to_map(fields)


def _as_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _as_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise EventDecodeError(f"Invalid decimal {value!r}") from e


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def decode_event(raw: RawEvent) -> DecodedEvent:
    """Decode a raw gateway event into its typed shape."""
    fields = decode_payload(raw.payload)
    kind = raw.kind

    if kind == LISTING_AVAILABLE:
        seller = fields.get("storefrontAddress") or fields.get("seller")
        return ListingAvailable(
            item_id=_as_str(fields.get("nftID")),
            listing_ref=_as_str(fields.get("listingResourceID")),
            price=_as_decimal(fields.get("price")),
            seller_address=str(seller).lower() if seller else None,
            nft_type=str(fields.get("nftType") or ""),
            group_id=_as_str(fields.get("editionID")),
            block_height=raw.block_height,
            listed_at=raw.block_timestamp,
        )
    if kind == LISTING_COMPLETED:
        return ListingCompleted(
            item_id=_as_str(fields.get("nftID")),
            listing_ref=_as_str(fields.get("listingResourceID")),
            purchased=_as_bool(fields.get("purchased")),
            block_height=raw.block_height,
        )
    if kind == LISTING_REMOVED:
        return ListingRemoved(
            item_id=_as_str(fields.get("nftID")),
            listing_ref=_as_str(fields.get("listingResourceID")),
            block_height=raw.block_height,
        )
    raise EventDecodeError(f"Unsupported event type {raw.event_type}")
