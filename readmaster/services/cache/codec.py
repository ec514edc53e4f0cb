"""Serialization of cache payloads.

The cache stores strings; a codec turns arbitrary values into those
strings and back. JSON is the default.
"""

import json
from typing import Any, Protocol

from readmaster.core.exceptions import CacheSerializationError


class CacheCodec(Protocol):
    """Converts values to and from the string form stored in Redis."""

    def encode(self, value: Any) -> str: ...

    def decode(self, raw: Any) -> Any: ...


class JsonCodec:
    """Compact JSON codec."""

    def encode(self, value: Any) -> str:
        try:
            return json.dumps(value, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            raise CacheSerializationError(f"Cannot encode {type(value).__name__}: {e}") from e

    def decode(self, raw: Any) -> Any:
        # The REST client may hand back numbers (e.g. after INCR) unparsed
        if raw is None or isinstance(raw, (int, float, bool)):
            return raw
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            raise CacheSerializationError(f"Malformed cached payload: {e}") from e


default_codec = JsonCodec()
