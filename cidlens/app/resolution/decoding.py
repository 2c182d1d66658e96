from __future__ import annotations

import json

from cidlens.app.media.service import to_data_uri
from cidlens.app.resolution.contracts import Document, MalformedContentError


def decode_document(body: bytes) -> Document:
    try:
        value = json.loads(body.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedContentError("Response body is not JSON") from exc
    if not isinstance(value, (dict, list)):
        raise MalformedContentError("Response body is not a JSON object or array")
    return value


def decode_asset(body: bytes) -> str:
    if not body:
        raise MalformedContentError("Response body is empty")
    return to_data_uri(body)
