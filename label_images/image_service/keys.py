"""
Storage key and pagination cursor encodings.

Object keys written by the upload paths have exactly three segments,
``{userId}/{imageId}/{fileName}``. The ingestion listener recovers the owner,
the image id and the file name from that layout, so anything else is rejected
instead of being guessed at.

The cursor handed to clients is DynamoDB's ``LastEvaluatedKey`` serialized as
JSON and base64url encoded (padding stripped), so it survives a query string
without extra escaping.
"""
import base64
import binascii
import json
import re
from typing import Any, Dict, NamedTuple, Optional
from urllib.parse import unquote_plus

KEY_SEGMENTS = 3
CURSOR_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

class MalformedKeyError(ValueError):
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Object key '{key}' is not of the form userId/imageId/fileName")

class InvalidCursorError(ValueError):
    pass

class StorageKey(NamedTuple):
    user_id: str
    image_id: str
    file_name: str

    def __str__(self) -> str:
        return f"{self.user_id}/{self.image_id}/{self.file_name}"

def build_storage_key(user_id: str, image_id: str, file_name: str) -> str:
    return str(StorageKey(user_id, image_id, file_name))

def parse_storage_key(key: str) -> StorageKey:
    parts = key.split("/")
    if len(parts) != KEY_SEGMENTS or not all(parts):
        raise MalformedKeyError(key)
    return StorageKey(*parts)

def decode_event_key(raw_key: str) -> str:
    """S3 notifications carry form-encoded keys ('+' for space)."""
    return unquote_plus(raw_key)

def encode_cursor(last_evaluated_key: Optional[Dict[str, Any]]) -> Optional[str]:
    if not last_evaluated_key:
        return None
    raw = json.dumps(last_evaluated_key, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")

def decode_cursor(cursor: Optional[str]) -> Optional[Dict[str, Any]]:
    if not cursor:
        return None
    if not CURSOR_PATTERN.match(cursor):
        raise InvalidCursorError("invalid cursor: unexpected characters")
    padded = cursor + "=" * (-len(cursor) % 4)
    try:
        decoded = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise InvalidCursorError(f"invalid cursor: {e}") from e
    if not isinstance(decoded, dict):
        raise InvalidCursorError("invalid cursor: not an object")
    return decoded
