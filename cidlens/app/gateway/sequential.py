from __future__ import annotations

import logging
from typing import Sequence

from cidlens.app.cache.service import RelayPreferenceTable
from cidlens.app.gateway.contracts import EndpointDescriptor, RelayDescriptor
from cidlens.app.gateway.transport import (
    Decoder,
    HttpFetcher,
    run_attempt,
    summarize_failures,
)
from cidlens.app.resolution.contracts import (
    TIER_SEQUENTIAL,
    Failure,
    ResolutionOutcome,
)
from cidlens.app.resolution.decoding import decode_asset, decode_document

LOGGER = logging.getLogger(__name__)

DEFAULT_SEQUENTIAL_TIMEOUT_S = 5.0


def ordered_relays(
    endpoint: EndpointDescriptor,
    relays: Sequence[RelayDescriptor],
    preferences: RelayPreferenceTable,
) -> list[RelayDescriptor]:
    preferred_name = preferences.preferred(endpoint.base_url)
    if preferred_name is None:
        return list(relays)
    preferred = [relay for relay in relays if relay.name == preferred_name]
    rest = [relay for relay in relays if relay.name != preferred_name]
    return preferred + rest


async def sequential(
    identifier: str,
    endpoints: Sequence[EndpointDescriptor],
    relays: Sequence[RelayDescriptor],
    *,
    fetcher: HttpFetcher,
    preferences: RelayPreferenceTable,
    decoder: Decoder,
    timeout_s: float = DEFAULT_SEQUENTIAL_TIMEOUT_S,
) -> ResolutionOutcome:
    """Try every endpoint through every relay, one attempt at a time.

    Endpoints are walked in declared order. For each endpoint the relay that
    last worked for it goes first, then the others in declared order. The
    winning pair is remembered in the preference table.
    """
    failures: list[Failure] = []
    for endpoint in endpoints:
        for relay in ordered_relays(endpoint, relays, preferences):
            outcome = await run_attempt(
                tier=TIER_SEQUENTIAL,
                url=relay.wrap(endpoint.url_for(identifier)),
                fetcher=fetcher,
                decoder=decoder,
                timeout_s=timeout_s,
                endpoint=endpoint.base_url,
                relay=relay.name,
            )
            if outcome.ok:
                preferences.remember(endpoint.base_url, relay.name)
                return outcome
            failures.append(outcome)
    LOGGER.debug(
        "Sequential fallback exhausted",
        extra={"identifier": identifier, "attempts": len(failures)},
    )
    return Failure(
        reason=summarize_failures(failures, "no endpoint and relay combination")
    )


async def sequential_document(
    identifier: str,
    endpoints: Sequence[EndpointDescriptor],
    relays: Sequence[RelayDescriptor],
    *,
    fetcher: HttpFetcher,
    preferences: RelayPreferenceTable,
    timeout_s: float = DEFAULT_SEQUENTIAL_TIMEOUT_S,
) -> ResolutionOutcome:
    return await sequential(
        identifier,
        endpoints,
        relays,
        fetcher=fetcher,
        preferences=preferences,
        decoder=decode_document,
        timeout_s=timeout_s,
    )


async def sequential_asset(
    identifier: str,
    endpoints: Sequence[EndpointDescriptor],
    relays: Sequence[RelayDescriptor],
    *,
    fetcher: HttpFetcher,
    preferences: RelayPreferenceTable,
    timeout_s: float = DEFAULT_SEQUENTIAL_TIMEOUT_S,
) -> ResolutionOutcome:
    return await sequential(
        identifier,
        endpoints,
        relays,
        fetcher=fetcher,
        preferences=preferences,
        decoder=decode_asset,
        timeout_s=timeout_s,
    )
