from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

import httpx

from cidlens.app.node.contracts import (
    NODE_STATE_READY,
    NODE_STATE_UNAVAILABLE,
    NODE_STATE_UNINITIALIZED,
    DirectNodeSettings,
    NodeIdentity,
)
from cidlens.app.observability.service import attempt_trace, elapsed_ms
from cidlens.app.resolution.contracts import (
    TIER_DIRECT_NODE,
    Document,
    DirectNodeUnavailable,
    Failure,
    ResolutionOutcome,
    Success,
    failure_reason,
)
from cidlens.app.resolution.decoding import decode_asset, decode_document
from cidlens.app.runtime.store import runtime_store

LOGGER = logging.getLogger(__name__)

DEFAULT_DOCUMENT_TIMEOUT_S = 10.0
DEFAULT_ASSET_TIMEOUT_S = 10.0


class DirectNodeClient:
    """Content retrieval through a local IPFS node's RPC API."""

    def __init__(self, http_client: httpx.AsyncClient, identity: NodeIdentity) -> None:
        self._http = http_client
        self.identity = identity

    async def cat(self, identifier: str) -> bytes:
        chunks: list[bytes] = []
        async with self._http.stream(
            "POST", "/api/v0/cat", params={"arg": identifier}
        ) as response:
            response.raise_for_status()
            async for chunk in response.aiter_bytes():
                chunks.append(chunk)
        return b"".join(chunks)

    async def aclose(self) -> None:
        await self._http.aclose()


def _parse_identity(payload: object) -> NodeIdentity:
    if not isinstance(payload, dict):
        raise DirectNodeUnavailable("Node identity response is not an object")
    peer_id = payload.get("ID")
    if not isinstance(peer_id, str) or not peer_id:
        raise DirectNodeUnavailable("Node identity response has no peer ID")
    agent_version = payload.get("AgentVersion")
    protocols = payload.get("Protocols")
    addresses = payload.get("Addresses")
    return NodeIdentity(
        peer_id=peer_id,
        agent_version=agent_version if isinstance(agent_version, str) else "",
        protocols=tuple(
            value for value in protocols or [] if isinstance(value, str)
        ),
        addresses=tuple(
            value for value in addresses or [] if isinstance(value, str)
        ),
    )


async def create_direct_node_client(
    settings: DirectNodeSettings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> DirectNodeClient:
    """Connect to the node and check it can serve content.

    The node must advertise every protocol prefix in
    ``settings.required_protocols`` (block exchange by default), otherwise it
    cannot fetch content it does not already hold.
    """
    http_client = httpx.AsyncClient(
        base_url=settings.api_url,
        timeout=httpx.Timeout(settings.init_timeout_s, read=None),
        limits=httpx.Limits(
            max_connections=settings.max_connections,
            max_keepalive_connections=settings.max_connections,
        ),
        verify=settings.verify_tls,
        transport=transport,
    )
    try:
        response = await http_client.post(
            "/api/v0/id", timeout=httpx.Timeout(settings.init_timeout_s)
        )
        response.raise_for_status()
        identity = _parse_identity(response.json())
        missing = [
            prefix
            for prefix in settings.required_protocols
            if not any(protocol.startswith(prefix) for protocol in identity.protocols)
        ]
        if missing:
            raise DirectNodeUnavailable(
                f"Node does not advertise required protocols: {', '.join(missing)}"
            )
    except BaseException:
        await http_client.aclose()
        raise
    LOGGER.info(
        "Direct node connected",
        extra={"peer_id": identity.peer_id, "agent_version": identity.agent_version},
    )
    return DirectNodeClient(http_client, identity)


class DirectNodeGuard:
    """Once-only initializer owning the shared direct node client.

    Concurrent first callers share a single initialization task. A failed or
    timed out initialization is recorded and replayed to every later caller
    without retrying. Callers that stop waiting do not cancel the shared
    initialization.
    """

    def __init__(
        self,
        factory: Callable[[], Awaitable[DirectNodeClient]],
        init_timeout_s: float | None = None,
    ) -> None:
        self._factory = factory
        self.init_timeout_s = init_timeout_s
        self._init_task: asyncio.Task[None] | None = None
        self._client: DirectNodeClient | None = None
        self._failure: str | None = None
        self.init_attempts = 0

    @property
    def state(self) -> str:
        if self._client is not None:
            return NODE_STATE_READY
        if self._failure is not None:
            return NODE_STATE_UNAVAILABLE
        return NODE_STATE_UNINITIALIZED

    @property
    def failure(self) -> str | None:
        return self._failure

    @property
    def client(self) -> DirectNodeClient | None:
        return self._client

    async def get(self) -> DirectNodeClient:
        if self._client is not None:
            return self._client
        if self._failure is not None:
            raise DirectNodeUnavailable(self._failure)
        if self._init_task is None:
            self.init_attempts += 1
            self._init_task = asyncio.create_task(self._initialize())
        await asyncio.shield(self._init_task)
        if self._client is None:
            raise DirectNodeUnavailable(
                self._failure or "Direct node initialization did not complete"
            )
        return self._client

    async def _initialize(self) -> None:
        try:
            if self.init_timeout_s is None:
                self._client = await self._factory()
            else:
                self._client = await asyncio.wait_for(
                    self._factory(), self.init_timeout_s
                )
        except asyncio.TimeoutError as exc:
            self._failure = f"initialization timed out after {self.init_timeout_s:g}s"
            LOGGER.warning(
                "Direct node initialization timed out; disabled for this session",
                exc_info=exc,
            )
        except Exception as exc:  # noqa: BLE001
            self._failure = failure_reason(exc)
            LOGGER.warning(
                "Direct node initialization failed; disabled for this session",
                exc_info=exc,
            )

    async def close(self) -> None:
        task = self._init_task
        client = self._client
        self._init_task = None
        self._client = None
        self._failure = None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        if client is not None:
            await client.aclose()


_direct_node_guards: dict[DirectNodeSettings, DirectNodeGuard] = {}


def get_direct_node_guard(
    settings: DirectNodeSettings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> DirectNodeGuard:
    """Return the process-wide guard for ``settings``, creating it on first use."""
    guard = _direct_node_guards.get(settings)
    if guard is None:

        async def _factory() -> DirectNodeClient:
            return await create_direct_node_client(settings, transport=transport)

        guard = DirectNodeGuard(_factory, init_timeout_s=settings.init_timeout_s)
        _direct_node_guards[settings] = guard
    return guard


async def reset_direct_node() -> None:
    guards = list(_direct_node_guards.values())
    _direct_node_guards.clear()
    for guard in guards:
        await guard.close()


class DirectNodeResolver:
    def __init__(
        self,
        guard: DirectNodeGuard,
        *,
        document_timeout_s: float = DEFAULT_DOCUMENT_TIMEOUT_S,
        asset_timeout_s: float = DEFAULT_ASSET_TIMEOUT_S,
    ) -> None:
        self._guard = guard
        self.document_timeout_s = document_timeout_s
        self.asset_timeout_s = asset_timeout_s

    @property
    def state(self) -> str:
        return self._guard.state

    async def _cat(self, identifier: str, timeout_s: float) -> bytes:
        async def _fetch() -> bytes:
            client = await self._guard.get()
            return await client.cat(identifier)

        return await asyncio.wait_for(_fetch(), timeout_s)

    async def fetch_document(self, identifier: str) -> Document:
        return decode_document(await self._cat(identifier, self.document_timeout_s))

    async def fetch_asset(self, identifier: str) -> str:
        return decode_asset(await self._cat(identifier, self.asset_timeout_s))

    async def attempt_document(self, identifier: str) -> ResolutionOutcome:
        return await self._attempt(identifier, self.fetch_document)

    async def attempt_asset(self, identifier: str) -> ResolutionOutcome:
        return await self._attempt(identifier, self.fetch_asset)

    async def _attempt(
        self,
        identifier: str,
        fetch: Callable[[str], Awaitable[object]],
    ) -> ResolutionOutcome:
        started_at = time.perf_counter()
        try:
            payload = await fetch(identifier)
        except DirectNodeUnavailable as exc:
            return Failure(reason=failure_reason(exc), endpoint=TIER_DIRECT_NODE)
        except asyncio.TimeoutError:
            reason = "timed out"
        except Exception as exc:  # noqa: BLE001
            reason = failure_reason(exc)
        else:
            runtime_store.record_trace(
                attempt_trace(TIER_DIRECT_NODE, identifier, started_at)
            )
            return Success(
                payload=payload,  # type: ignore[arg-type]
                latency_ms=elapsed_ms(started_at),
                endpoint=TIER_DIRECT_NODE,
            )
        runtime_store.record_trace(
            attempt_trace(
                TIER_DIRECT_NODE,
                identifier,
                started_at,
                status="error",
                error_message=reason,
            )
        )
        return Failure(reason=reason, endpoint=TIER_DIRECT_NODE)
