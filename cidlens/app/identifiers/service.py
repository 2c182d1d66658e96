from __future__ import annotations

import re

from cidlens.app.identifiers.contracts import IdentifierForm, ParsedIdentifier
from cidlens.core.config import DEFAULT_PUBLIC_GATEWAY

SCHEME_PREFIX = re.compile(r"^ipfs://", re.IGNORECASE)
GATEWAY_PREFIX = re.compile(r"https?://[^/\s]+/ipfs/", re.IGNORECASE)
RETRIEVAL_MARKER = "ipfs/"
NESTED_SEGMENT = re.compile(r"ipfs/([A-Za-z0-9]+)", re.IGNORECASE)

_FORM_RANK = {
    IdentifierForm.BARE: 0,
    IdentifierForm.SCHEME: 1,
    IdentifierForm.GATEWAY_URL: 2,
    IdentifierForm.NESTED_GATEWAY_URL: 3,
}


def _single_pass(value: str) -> tuple[str, IdentifierForm]:
    value = value.strip()
    form = IdentifierForm.BARE

    if SCHEME_PREFIX.match(value):
        value = SCHEME_PREFIX.sub("", value, count=1)
        form = IdentifierForm.SCHEME

    gateway_match = GATEWAY_PREFIX.search(value)
    if gateway_match:
        value = value[gateway_match.end() :]
        form = IdentifierForm.GATEWAY_URL

    if RETRIEVAL_MARKER in value.lower():
        nested = NESTED_SEGMENT.findall(value)
        if nested:
            # innermost segment wins when gateway URLs are embedded in each other
            value = nested[-1]
            form = IdentifierForm.NESTED_GATEWAY_URL

    return value.strip().rstrip("/").strip(), form


def parse_identifier(raw: object) -> ParsedIdentifier:
    """Recognize one of the accepted identifier spellings.

    Accepted forms are a bare identifier, ``ipfs://<id>``, a gateway URL
    ``<origin>/ipfs/<id>`` and a gateway URL nested inside another string or
    gateway URL. Anything else is returned as a best-effort bare identifier.

    The extraction pass is repeated until the value stops changing, so the
    result is always a fixed point and normalizing it again is a no-op.
    """
    if not isinstance(raw, str):
        return ParsedIdentifier(form=IdentifierForm.BARE, identifier="")

    value = raw
    form = IdentifierForm.BARE
    while True:
        extracted, pass_form = _single_pass(value)
        if _FORM_RANK[pass_form] > _FORM_RANK[form]:
            form = pass_form
        if extracted == value:
            break
        value = extracted
    return ParsedIdentifier(form=form, identifier=value)


def normalize(raw: object) -> str:
    return parse_identifier(raw).identifier


def to_gateway_url(raw: object, gateway: str = DEFAULT_PUBLIC_GATEWAY) -> str:
    identifier = normalize(raw)
    if not identifier:
        return ""
    base = gateway if gateway.endswith("/") else f"{gateway}/"
    return f"{base}{identifier}"
