from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
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
    TIER_GATEWAY_RACE,
    Failure,
    ResolutionOutcome,
    Success,
)
from cidlens.app.resolution.decoding import decode_asset, decode_document

LOGGER = logging.getLogger(__name__)

DEFAULT_RACE_TIMEOUT_S = 8.0


def relay_for_endpoint(
    endpoint: EndpointDescriptor,
    relays: Sequence[RelayDescriptor],
    preferences: RelayPreferenceTable,
) -> RelayDescriptor:
    preferred_name = preferences.preferred(endpoint.base_url)
    if preferred_name is not None:
        for relay in relays:
            if relay.name == preferred_name:
                return relay
    return relays[0]


async def race(
    identifier: str,
    endpoints: Sequence[EndpointDescriptor],
    relays: Sequence[RelayDescriptor],
    *,
    fetcher: HttpFetcher,
    preferences: RelayPreferenceTable,
    decoder: Decoder,
    timeout_s: float = DEFAULT_RACE_TIMEOUT_S,
) -> tuple[ResolutionOutcome, tuple[EndpointDescriptor, ...]]:
    """Fetch from every endpoint at once and keep the fastest success.

    All attempts start together, so the first success to complete is the
    lowest-latency one. Successes completing in the same step are ranked by
    ``(latency_ms, declaration index)``. Attempts still running once a winner
    is chosen are cancelled and drained before returning.

    Returns the outcome together with the per-endpoint observations of this
    race.
    """
    if not endpoints or not relays:
        return Failure(reason="no endpoints configured"), tuple(endpoints)

    tasks: dict[asyncio.Task[ResolutionOutcome], tuple[int, EndpointDescriptor]]
    tasks = {}
    for position, endpoint in enumerate(endpoints):
        relay = relay_for_endpoint(endpoint, relays, preferences)
        task = asyncio.create_task(
            run_attempt(
                tier=TIER_GATEWAY_RACE,
                url=relay.wrap(endpoint.url_for(identifier)),
                fetcher=fetcher,
                decoder=decoder,
                timeout_s=timeout_s,
                endpoint=endpoint.base_url,
                relay=relay.name,
            )
        )
        tasks[task] = (position, endpoint)

    observed = dict(enumerate(endpoints))
    failures: list[Failure] = []
    winner: Success | None = None
    pending: set[asyncio.Task[ResolutionOutcome]] = set(tasks)
    try:
        while pending and winner is None:
            done, pending = await asyncio.wait(
                pending, return_when=asyncio.FIRST_COMPLETED
            )
            finished: list[tuple[int, int, Success]] = []
            for task in done:
                position, endpoint = tasks[task]
                outcome = task.result()
                if isinstance(outcome, Success):
                    finished.append((outcome.latency_ms, position, outcome))
                    observed[position] = replace(
                        endpoint, latency_ms=outcome.latency_ms, succeeded=True
                    )
                else:
                    failures.append(outcome)
                    observed[position] = replace(endpoint, succeeded=False)
            if finished:
                winner = min(finished, key=lambda row: (row[0], row[1]))[2]
    finally:
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    observations = tuple(observed[position] for position in sorted(observed))
    if winner is not None:
        if pending:
            LOGGER.debug(
                "Cancelled slower race attempts",
                extra={"identifier": identifier, "cancelled": len(pending)},
            )
        return winner, observations
    return (
        Failure(reason=summarize_failures(failures, "all gateway attempts failed")),
        observations,
    )


async def race_document(
    identifier: str,
    endpoints: Sequence[EndpointDescriptor],
    relays: Sequence[RelayDescriptor],
    *,
    fetcher: HttpFetcher,
    preferences: RelayPreferenceTable,
    timeout_s: float = DEFAULT_RACE_TIMEOUT_S,
) -> ResolutionOutcome:
    outcome, _ = await race(
        identifier,
        endpoints,
        relays,
        fetcher=fetcher,
        preferences=preferences,
        decoder=decode_document,
        timeout_s=timeout_s,
    )
    return outcome


async def race_asset(
    identifier: str,
    endpoints: Sequence[EndpointDescriptor],
    relays: Sequence[RelayDescriptor],
    *,
    fetcher: HttpFetcher,
    preferences: RelayPreferenceTable,
    timeout_s: float = DEFAULT_RACE_TIMEOUT_S,
) -> ResolutionOutcome:
    outcome, _ = await race(
        identifier,
        endpoints,
        relays,
        fetcher=fetcher,
        preferences=preferences,
        decoder=decode_asset,
        timeout_s=timeout_s,
    )
    return outcome
