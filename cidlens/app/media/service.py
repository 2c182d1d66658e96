from __future__ import annotations

import base64

GENERIC_BINARY_MIME = "application/octet-stream"

JPEG_MAGIC = b"\xff\xd8\xff"
PNG_MAGIC = b"\x89PNG"
GIF_MAGIC = b"GIF8"
RIFF_MAGIC = b"RIFF"
WEBP_MARKER = b"WEBP"


def sniff_mime(data: bytes) -> str:
    head = bytes(data[:12])
    if head.startswith(JPEG_MAGIC):
        return "image/jpeg"
    if head.startswith(PNG_MAGIC):
        return "image/png"
    if head.startswith(GIF_MAGIC):
        return "image/gif"
    if head.startswith(RIFF_MAGIC) and head[8:12] == WEBP_MARKER:
        return "image/webp"
    return GENERIC_BINARY_MIME


def to_data_uri(data: bytes, mime: str | None = None) -> str:
    media_type = mime or sniff_mime(data)
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{media_type};base64,{encoded}"


def is_data_uri(reference: str) -> bool:
    return reference.startswith("data:")
