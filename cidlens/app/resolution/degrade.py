from __future__ import annotations

from typing import Any

from cidlens.app.identifiers.service import to_gateway_url
from cidlens.core.config import DEFAULT_PUBLIC_GATEWAY

UNAVAILABLE_NAME = "Unavailable NFT"
UNAVAILABLE_DESCRIPTION = "Metadata could not be loaded"


def unavailable_document() -> dict[str, Any]:
    return {
        "name": UNAVAILABLE_NAME,
        "description": UNAVAILABLE_DESCRIPTION,
        "image": "",
    }


def is_unavailable_document(document: object) -> bool:
    return document == unavailable_document()


def fallback_asset_reference(
    identifier: str, public_gateway: str = DEFAULT_PUBLIC_GATEWAY
) -> str:
    return to_gateway_url(identifier, public_gateway)
