from __future__ import annotations

from typing import Sequence

from cidlens.app.gateway.contracts import RelayDescriptor
from cidlens.app.gateway.transport import (
    Decoder,
    HttpFetcher,
    run_attempt,
    summarize_failures,
)
from cidlens.app.identifiers.service import parse_identifier
from cidlens.app.resolution.contracts import (
    TIER_SUBDOMAIN,
    Failure,
    ResolutionOutcome,
)
from cidlens.app.resolution.decoding import decode_asset, decode_document
from cidlens.core.config import DEFAULT_SUBDOMAIN_HOST

DEFAULT_SUBDOMAIN_TIMEOUT_S = 5.0


def subdomain_origin(identifier: str, host: str = DEFAULT_SUBDOMAIN_HOST) -> str:
    return f"https://{parse_identifier(identifier).root}.{host.strip('./')}/"


def subdomain_url(identifier: str, host: str = DEFAULT_SUBDOMAIN_HOST) -> str:
    return f"{subdomain_origin(identifier, host)}{parse_identifier(identifier).path}"


async def subdomain(
    identifier: str,
    relays: Sequence[RelayDescriptor],
    *,
    fetcher: HttpFetcher,
    decoder: Decoder,
    host: str = DEFAULT_SUBDOMAIN_HOST,
    timeout_s: float = DEFAULT_SUBDOMAIN_TIMEOUT_S,
) -> ResolutionOutcome:
    if not parse_identifier(identifier).root:
        return Failure(reason="identifier is empty")
    target = subdomain_url(identifier, host)
    origin = subdomain_origin(identifier, host)
    failures: list[Failure] = []
    for relay in relays:
        outcome = await run_attempt(
            tier=TIER_SUBDOMAIN,
            url=relay.wrap(target),
            fetcher=fetcher,
            decoder=decoder,
            timeout_s=timeout_s,
            endpoint=origin,
            relay=relay.name,
        )
        if outcome.ok:
            return outcome
        failures.append(outcome)
    return Failure(reason=summarize_failures(failures, "no relays configured"))


async def subdomain_document(
    identifier: str,
    relays: Sequence[RelayDescriptor],
    *,
    fetcher: HttpFetcher,
    host: str = DEFAULT_SUBDOMAIN_HOST,
    timeout_s: float = DEFAULT_SUBDOMAIN_TIMEOUT_S,
) -> ResolutionOutcome:
    return await subdomain(
        identifier,
        relays,
        fetcher=fetcher,
        decoder=decode_document,
        host=host,
        timeout_s=timeout_s,
    )


async def subdomain_asset(
    identifier: str,
    relays: Sequence[RelayDescriptor],
    *,
    fetcher: HttpFetcher,
    host: str = DEFAULT_SUBDOMAIN_HOST,
    timeout_s: float = DEFAULT_SUBDOMAIN_TIMEOUT_S,
) -> ResolutionOutcome:
    return await subdomain(
        identifier,
        relays,
        fetcher=fetcher,
        decoder=decode_asset,
        host=host,
        timeout_s=timeout_s,
    )
