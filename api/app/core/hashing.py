import hashlib
import json
from typing import Any


def encode_value(value: Any) -> str:
    """Serialize a decoded JSON value with the fixed encoder; strings become JSON strings."""
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), sort_keys=True)


def encode_payload(payload: Any) -> str:
    """Return the exact text stored for ``payload``.

    Text is kept byte for byte; any other JSON value is serialized once with a
    fixed encoder so that equal Python values produce equal text.
    """
    if isinstance(payload, str):
        return payload
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload).decode("utf-8")
    return encode_value(payload)


def content_hash(payload_text: str) -> str:
    return hashlib.sha256(payload_text.encode("utf-8")).hexdigest()


def is_json_text(payload_text: str) -> bool:
    try:
        json.loads(payload_text)
    except ValueError:
        return False
    return True
