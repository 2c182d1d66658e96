from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Union

import httpx

from cidlens.core.config import AppConfig

Reply = tuple[float, Union[bytes, Exception]]


def base_config() -> AppConfig:
    return AppConfig(
        app_name="cidlens test",
        app_version="0.0.0",
        environment="test",
        enable_direct_node=False,
        node_api_url="http://node.test",
        node_required_protocols=("/ipfs/bitswap",),
        node_verify_tls=True,
        node_max_connections=4,
        gateways=("https://gw-a.test/ipfs/", "https://gw-b.test/ipfs/"),
        relays=("direct=",),
        public_gateway="https://public.test/ipfs/",
        subdomain_host="ipfs.sub.test",
        direct_document_timeout_s=1.0,
        direct_asset_timeout_s=1.0,
        race_timeout_s=1.0,
        sequential_timeout_s=1.0,
        asset_full_tiering=True,
    )


def json_bytes(payload: object) -> bytes:
    return json.dumps(payload).encode("utf-8")


def unreachable(url: str) -> Reply:
    return 0.0, httpx.ConnectError(f"unreachable: {url}")


class FakeFetcher:
    """Records every dispatched URL and replies from ``responder``."""

    def __init__(self, responder: Callable[[str], Reply] = unreachable) -> None:
        self._responder = responder
        self.calls: list[str] = []
        self.cancelled: list[str] = []

    async def fetch(self, url: str, *, timeout: float) -> bytes:
        _ = timeout
        self.calls.append(url)
        delay, result = self._responder(url)
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            self.cancelled.append(url)
            raise
        if isinstance(result, Exception):
            raise result
        return result


@asynccontextmanager
async def stalled_server() -> AsyncIterator[str]:
    """Accept TCP connections and never answer them."""
    release = asyncio.Event()

    async def handler(reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        await release.wait()
        writer.close()

    server = await asyncio.start_server(handler, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield f"http://127.0.0.1:{port}"
    finally:
        release.set()
        server.close()
        await server.wait_closed()
