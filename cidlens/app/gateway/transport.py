from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Protocol

import httpx

from cidlens.app.observability.service import attempt_trace, elapsed_ms
from cidlens.app.resolution.contracts import (
    Failure,
    Payload,
    ResolutionOutcome,
    Success,
    failure_reason,
)
from cidlens.app.runtime.store import RuntimeStore, runtime_store

LOGGER = logging.getLogger(__name__)

Decoder = Callable[[bytes], Payload]


class HttpFetcher(Protocol):
    async def fetch(self, url: str, *, timeout: float) -> bytes: ...


class HttpxFetcher:
    """Network dispatch for every gateway tier.

    One pooled client is shared by all attempts on the running event loop so
    concurrent race branches reuse connections.
    """

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        headers: dict[str, str] | None = None,
        max_connections: int = 32,
    ) -> None:
        self._transport = transport
        self._headers = headers or {"Accept": "application/json, image/*, */*"}
        self._limits = httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=max_connections,
        )
        self._client: httpx.AsyncClient | None = None
        self._client_loop: asyncio.AbstractEventLoop | None = None

    def _get_client(self) -> httpx.AsyncClient:
        loop = asyncio.get_running_loop()
        if self._client is None or self._client_loop is not loop:
            self._client = httpx.AsyncClient(
                transport=self._transport,
                headers=self._headers,
                limits=self._limits,
                follow_redirects=True,
            )
            self._client_loop = loop
        return self._client

    async def fetch(self, url: str, *, timeout: float) -> bytes:
        response = await self._get_client().get(url, timeout=timeout)
        response.raise_for_status()
        return response.content

    async def aclose(self) -> None:
        client = self._client
        self._client = None
        self._client_loop = None
        if client is not None:
            await client.aclose()


async def run_attempt(
    *,
    tier: str,
    url: str,
    fetcher: HttpFetcher,
    decoder: Decoder,
    timeout_s: float,
    endpoint: str | None = None,
    relay: str | None = None,
    store: RuntimeStore | None = None,
) -> ResolutionOutcome:
    """Fetch and decode one URL, folding every failure into a ``Failure``.

    Cancellation is not caught: a cancelled attempt propagates
    ``CancelledError`` to whoever owns the task.
    """
    active_store = store or runtime_store
    started_at = time.perf_counter()
    try:
        body = await asyncio.wait_for(fetcher.fetch(url, timeout=timeout_s), timeout_s)
        payload = decoder(body)
    except asyncio.TimeoutError:
        reason = f"timed out after {timeout_s:g}s"
    except Exception as exc:  # noqa: BLE001
        reason = failure_reason(exc)
    else:
        latency_ms = elapsed_ms(started_at)
        active_store.record_trace(attempt_trace(tier, url, started_at))
        LOGGER.debug(
            "Attempt succeeded",
            extra={"tier": tier, "url": url, "latency_ms": latency_ms},
        )
        return Success(
            payload=payload, latency_ms=latency_ms, endpoint=endpoint, relay=relay
        )

    active_store.record_trace(
        attempt_trace(tier, url, started_at, status="error", error_message=reason)
    )
    LOGGER.debug("Attempt failed", extra={"tier": tier, "url": url, "reason": reason})
    return Failure(reason=reason, endpoint=endpoint, relay=relay)


def summarize_failures(failures: list[Failure], default: str) -> str:
    if not failures:
        return default
    return "; ".join(
        f"{failure.endpoint or '?'} via {failure.relay or '?'}: {failure.reason}"
        for failure in failures
    )
