"""
TagPayload — the checksummed record written to a checkpoint tag.

Wire format is UTF-8 JSON with the fields locationId, checksum, timestamp
(integer milliseconds since epoch) and additionalData (map of primitives).
This is a pure data module with no HA dependencies.
"""
from __future__ import annotations

import dataclasses
import hashlib
import json
import logging
import time
from datetime import timedelta
from typing import Any

from .const import CHECKSUM_LENGTH, MAX_PAYLOAD_BYTES, REQUIRED_PAYLOAD_FIELDS
from .errors import DecodeError, PayloadError

_LOGGER = logging.getLogger(__name__)

_PRIMITIVES = (str, int, float, bool, type(None))


def _canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_checksum(location_id: str, timestamp: int, additional_data: dict[str, Any]) -> str:
    """SHA-256 over id, millisecond timestamp and canonical auxiliary data, truncated."""
    material = f"{location_id}{timestamp}{_canonical_json(additional_data)}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()[:CHECKSUM_LENGTH]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _additional_data_problem(data: dict[Any, Any]) -> str | None:
    """Why data cannot travel as additionalData, or None when it can."""
    for key, value in data.items():
        if not isinstance(key, str):
            return f"additionalData key {key!r} is not a string"
        if not isinstance(value, _PRIMITIVES):
            return f"additionalData[{key!r}] is not a primitive value"
    return None


@dataclasses.dataclass(frozen=True)
class TagPayload:
    """
    Decoded tag content.

    Treat as read-only; use with_changes() / refresh_checksum() to derive
    modified copies.
    """

    location_id: str
    checksum: str
    timestamp: int
    additional_data: dict[str, Any] = dataclasses.field(default_factory=dict)

    # additional_data is a dict, so payloads compare by value but cannot be hashed
    __hash__ = None  # type: ignore[assignment]

    @classmethod
    def create(
        cls,
        location_id: str,
        timestamp: int | None = None,
        additional_data: dict[str, Any] | None = None,
    ) -> "TagPayload":
        """
        Create a payload with a freshly derived checksum.

        Raises PayloadError when additional_data has non-string keys or
        non-primitive values, which the wire format cannot carry.
        """
        ts = _now_ms() if timestamp is None else int(timestamp)
        data = dict(additional_data or {})
        problem = _additional_data_problem(data)
        if problem:
            raise PayloadError(problem)
        return cls(
            location_id=location_id,
            checksum=compute_checksum(location_id, ts, data),
            timestamp=ts,
            additional_data=data,
        )

    def is_valid(self) -> bool:
        return self.checksum == compute_checksum(self.location_id, self.timestamp, self.additional_data)

    def refresh_checksum(self) -> "TagPayload":
        return dataclasses.replace(
            self, checksum=compute_checksum(self.location_id, self.timestamp, self.additional_data)
        )

    def with_changes(self, **changes: Any) -> "TagPayload":
        """Copy with fields replaced, checksum left as it was."""
        return dataclasses.replace(self, **changes)

    def is_expired(self, max_age: timedelta) -> bool:
        age_ms = _now_ms() - self.timestamp
        return age_ms > max_age.total_seconds() * 1000

    def as_dict(self) -> dict[str, Any]:
        return {
            "locationId": self.location_id,
            "checksum": self.checksum,
            "timestamp": self.timestamp,
            "additionalData": dict(self.additional_data),
        }

    def encode(self) -> bytes:
        return _canonical_json(self.as_dict()).encode("utf-8")

    @classmethod
    def decode(cls, data: bytes | str) -> "TagPayload":
        """Parse encoded bytes; raises DecodeError on anything malformed."""
        if isinstance(data, (bytes, bytearray)):
            try:
                text = bytes(data).decode("utf-8")
            except UnicodeDecodeError as exc:
                raise DecodeError(f"not UTF-8 ({exc})") from exc
        else:
            text = data

        try:
            raw = json.loads(text)
        except ValueError as exc:
            raise DecodeError(f"not valid JSON ({exc})") from exc

        if not isinstance(raw, dict):
            raise DecodeError("top-level value is not an object")
        if not has_required_fields(raw):
            missing = [f for f in REQUIRED_PAYLOAD_FIELDS if f not in raw]
            raise DecodeError(f"missing required fields {missing}")

        location_id = raw["locationId"]
        checksum = raw["checksum"]
        timestamp = raw["timestamp"]
        additional = raw.get("additionalData") or {}

        if not isinstance(location_id, str) or not location_id:
            raise DecodeError("locationId must be a non-empty string")
        if not isinstance(checksum, str):
            raise DecodeError("checksum must be a string")
        # bool is an int subclass; reject it explicitly
        if isinstance(timestamp, bool) or not isinstance(timestamp, int):
            raise DecodeError("timestamp must be integer milliseconds")
        if not isinstance(additional, dict):
            raise DecodeError("additionalData must be an object")
        problem = _additional_data_problem(additional)
        if problem:
            raise DecodeError(problem)

        return cls(
            location_id=location_id,
            checksum=checksum,
            timestamp=timestamp,
            additional_data=dict(additional),
        )


# ---------------------------------------------------------------------------
# Size budget helpers
# ---------------------------------------------------------------------------

def fits_budget(data: bytes, max_bytes: int = MAX_PAYLOAD_BYTES) -> bool:
    return len(data) <= max_bytes


def estimate_size(payload: TagPayload) -> int:
    return len(payload.encode())


def has_required_fields(record: dict[str, Any]) -> bool:
    return all(field in record for field in REQUIRED_PAYLOAD_FIELDS)


def is_valid_format(data: bytes | str) -> bool:
    try:
        TagPayload.decode(data)
    except DecodeError:
        return False
    return True


def create_within_budget(
    location_id: str,
    additional_data: dict[str, Any],
    timestamp: int | None = None,
    max_bytes: int = MAX_PAYLOAD_BYTES,
) -> TagPayload:
    """
    Create a payload whose encoding fits max_bytes.

    Auxiliary entries are dropped oldest-first (dict insertion order) until the
    encoding fits. The caller's dict is left untouched. Raises PayloadError
    when even the bare payload exceeds max_bytes.
    """
    ts = _now_ms() if timestamp is None else int(timestamp)
    remaining = dict(additional_data)
    payload = TagPayload.create(location_id, ts, remaining)
    while not fits_budget(payload.encode(), max_bytes) and remaining:
        oldest = next(iter(remaining))
        del remaining[oldest]
        _LOGGER.debug("Dropping auxiliary entry %s to fit tag budget", oldest)
        payload = TagPayload.create(location_id, ts, remaining)
    if not fits_budget(payload.encode(), max_bytes):
        _LOGGER.warning(
            "Payload for %s needs %d bytes even without auxiliary data, budget is %d",
            location_id, estimate_size(payload), max_bytes,
        )
        raise PayloadError(f"Payload for {location_id} does not fit in {max_bytes} bytes")
    return payload
