"""
JSON codec for cache payloads.

Cache values are arbitrary nested structures produced by the renderer:
plain dicts/lists/scalars, raw byte buffers (page bodies, RSC payloads) and
map-like containers whose values are themselves byte buffers (segment
data). JSON has no representation for the last two, so they travel inside
small envelopes:

    {"$type": "bytes", "data": "<base64>"}
    {"$type": "map", "entries": {"<key>": <encoded value>, ...}}

Anything without one of these markers is returned untouched on decode, and
envelopes carrying an unknown ``$type`` are kept opaque so payloads written
by newer code still load.
"""

import base64
import binascii
import json
from collections import OrderedDict
from collections.abc import Mapping
from typing import Any, Dict

from shared.errors import CodecError

TYPE_MARKER = "$type"
BYTES_MARKER = "bytes"
MAP_MARKER = "map"


def encode_value(value: Any) -> Any:
    """Convert a payload into JSON-native structures."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return {
            TYPE_MARKER: BYTES_MARKER,
            "data": base64.b64encode(bytes(value)).decode("ascii"),
        }

    if isinstance(value, Mapping):
        # Plain dicts stay plain unless they would be mistaken for an envelope
        if type(value) is dict and TYPE_MARKER not in value:
            return {_require_str_key(k): encode_value(v) for k, v in value.items()}
        return {
            TYPE_MARKER: MAP_MARKER,
            "entries": {_require_str_key(k): encode_value(v) for k, v in value.items()},
        }

    if isinstance(value, (list, tuple)):
        return [encode_value(item) for item in value]

    return value


def decode_value(value: Any) -> Any:
    """Reverse :func:`encode_value`."""
    if isinstance(value, list):
        return [decode_value(item) for item in value]

    if not isinstance(value, dict):
        return value

    marker = value.get(TYPE_MARKER)
    if marker == BYTES_MARKER and isinstance(value.get("data"), str):
        try:
            return base64.b64decode(value["data"], validate=True)
        except (binascii.Error, ValueError):
            return value

    if marker == MAP_MARKER and isinstance(value.get("entries"), dict):
        return OrderedDict(
            (key, decode_value(item)) for key, item in value["entries"].items()
        )

    if marker is not None:
        # Foreign envelope
        return value

    return {key: decode_value(item) for key, item in value.items()}


def encode(value: Any) -> str:
    """Serialize a payload to JSON text."""
    try:
        return json.dumps(encode_value(value), separators=(",", ":"))
    except (TypeError, ValueError, RecursionError) as exc:
        raise CodecError("Payload is not serializable", {"error": str(exc)})


def decode(text: Any) -> Any:
    """Parse JSON text produced by :func:`encode`."""
    try:
        if isinstance(text, (bytes, bytearray)):
            text = bytes(text).decode("utf-8")
        return decode_value(json.loads(text))
    except (TypeError, ValueError, RecursionError) as exc:
        raise CodecError("Malformed cache payload", {"error": str(exc)})


def encode_document(document: Dict[str, Any]) -> bytes:
    """Serialize a stored entry document, encoding only its ``value``."""
    body = dict(document)
    try:
        body["value"] = encode_value(document.get("value"))
        return json.dumps(body, indent=2).encode("utf-8")
    except (TypeError, ValueError, RecursionError) as exc:
        raise CodecError("Entry document is not serializable", {"error": str(exc)})


def decode_document(data: bytes) -> Dict[str, Any]:
    """Parse a stored entry document and restore its ``value``."""
    try:
        document = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError, RecursionError) as exc:
        raise CodecError("Malformed cache document", {"error": str(exc)})

    if not isinstance(document, dict) or "value" not in document:
        raise CodecError("Cache document has no value")

    try:
        document["value"] = decode_value(document["value"])
    except RecursionError as exc:
        raise CodecError("Cache document is nested too deeply", {"error": str(exc)})
    return document


def _require_str_key(key: Any) -> str:
    if not isinstance(key, str):
        raise CodecError("Mapping keys must be strings", {"key": repr(key)})
    return key
