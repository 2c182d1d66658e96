import asyncio
import logging
from dataclasses import replace

import pytest

from cidlens.app.node.service import (
    DirectNodeGuard,
    DirectNodeResolver,
    reset_direct_node,
)
from cidlens.app.resolution.contracts import ResultKind
from cidlens.app.resolution.degrade import unavailable_document
from cidlens.app.resolution.service import ContentResolver
from tests.fakes import FakeFetcher, base_config, json_bytes, stalled_server


class _NodeClient:
    def __init__(self, contents: dict[str, bytes]) -> None:
        self.contents = contents
        self.requests: list[str] = []

    async def cat(self, identifier: str) -> bytes:
        self.requests.append(identifier)
        if identifier not in self.contents:
            raise KeyError(identifier)
        return self.contents[identifier]


def _direct_node(client: _NodeClient | None) -> DirectNodeResolver:
    async def factory():
        if client is None:
            raise ConnectionRefusedError("no local node")
        return client

    return DirectNodeResolver(DirectNodeGuard(factory))


@pytest.mark.asyncio
async def test_cached_document_is_returned_without_dispatching() -> None:
    fetcher = FakeFetcher()
    resolver = ContentResolver(base_config(), fetcher=fetcher)
    resolver.cache.put("QmCached", ResultKind.DOCUMENT, {"name": "Cached"})

    resolution = await resolver.resolve_document_detailed("ipfs://QmCached")

    assert resolution.document == {"name": "Cached"}
    assert resolution.tier == "cache"
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_cached_asset_is_returned_without_touching_the_node() -> None:
    node = _NodeClient({})
    fetcher = FakeFetcher()
    resolver = ContentResolver(
        replace(base_config(), enable_direct_node=True),
        fetcher=fetcher,
        direct_node=_direct_node(node),
    )
    resolver.cache.put("QmImg", ResultKind.ASSET, "data:image/png;base64,AAAA")

    reference = await resolver.resolve_asset("https://ipfs.io/ipfs/QmImg")

    assert reference == "data:image/png;base64,AAAA"
    assert node.requests == []
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_direct_node_success_skips_gateways_and_populates_cache() -> None:
    node = _NodeClient({"QmDoc": json_bytes({"name": "From node"})})
    fetcher = FakeFetcher()
    resolver = ContentResolver(
        base_config(), fetcher=fetcher, direct_node=_direct_node(node)
    )

    first = await resolver.resolve_document_detailed("QmDoc")
    second = await resolver.resolve_document_detailed("QmDoc")

    assert first.document == {"name": "From node"}
    assert first.tier == "direct_node"
    assert second.tier == "cache"
    assert node.requests == ["QmDoc"]
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_gateway_race_runs_after_direct_node_failure() -> None:
    def responder(url: str):
        if "gw-b" in url:
            return 0.0, json_bytes({"name": "From gateway"})
        return 0.0, RuntimeError("down")

    resolver = ContentResolver(
        base_config(),
        fetcher=FakeFetcher(responder),
        direct_node=_direct_node(None),
    )

    resolution = await resolver.resolve_document_detailed("QmDoc")

    assert resolution.document == {"name": "From gateway"}
    assert resolution.tier == "gateway_race"
    assert resolution.degraded is False


@pytest.mark.asyncio
async def test_subdomain_fallback_is_last_network_tier() -> None:
    def responder(url: str):
        if url.startswith("https://QmDoc.ipfs.sub.test/"):
            return 0.0, json_bytes({"name": "From subdomain"})
        return 0.0, RuntimeError("down")

    fetcher = FakeFetcher(responder)
    resolver = ContentResolver(base_config(), fetcher=fetcher)

    resolution = await resolver.resolve_document_detailed("QmDoc")

    assert resolution.tier == "subdomain_fallback"
    assert sorted(fetcher.calls[:2]) == [
        "https://gw-a.test/ipfs/QmDoc",
        "https://gw-b.test/ipfs/QmDoc",
    ]
    assert fetcher.calls[2:] == [
        "https://gw-a.test/ipfs/QmDoc",
        "https://gw-b.test/ipfs/QmDoc",
        "https://QmDoc.ipfs.sub.test/",
    ]


@pytest.mark.asyncio
async def test_full_exhaustion_degrades_instead_of_raising(caplog) -> None:
    resolver = ContentResolver(
        base_config(), fetcher=FakeFetcher(), direct_node=_direct_node(None)
    )

    with caplog.at_level(logging.INFO, logger="cidlens.app.resolution.service"):
        document = await resolver.resolve_document("ipfs://QmGone")
        asset = await resolver.resolve_asset("ipfs://QmGone")

    assert document == {
        "name": "Unavailable NFT",
        "description": "Metadata could not be loaded",
        "image": "",
    }
    assert asset == "https://public.test/ipfs/QmGone"
    assert any('"event": "degraded"' in message for message in caplog.messages)
    assert any('"tier": "direct_node"' in message for message in caplog.messages)
    assert len(resolver.cache) == 0


@pytest.mark.asyncio
async def test_sentinel_document_is_a_fresh_copy() -> None:
    resolver = ContentResolver(base_config(), fetcher=FakeFetcher())

    document = await resolver.resolve_document("QmGone")
    document["name"] = "mutated"

    assert unavailable_document()["name"] == "Unavailable NFT"


@pytest.mark.asyncio
async def test_asset_direct_only_mode_skips_gateway_tiers() -> None:
    fetcher = FakeFetcher(lambda url: (0.0, b"\xff\xd8\xffjpeg"))
    resolver = ContentResolver(
        replace(base_config(), asset_full_tiering=False),
        fetcher=fetcher,
        direct_node=_direct_node(None),
    )

    resolution = await resolver.resolve_asset_detailed("QmImg")

    assert resolution.degraded is True
    assert resolution.reference == "https://public.test/ipfs/QmImg"
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_asset_from_gateway_is_inlined_and_cached() -> None:
    fetcher = FakeFetcher(lambda url: (0.0, b"\xff\xd8\xffjpeg"))
    resolver = ContentResolver(base_config(), fetcher=fetcher)

    resolution = await resolver.resolve_asset_detailed("QmImg")

    assert resolution.reference.startswith("data:image/jpeg;base64,")
    assert resolution.tier == "gateway_race"
    assert resolver.cache.get("QmImg", ResultKind.ASSET) == resolution.reference


@pytest.mark.asyncio
async def test_empty_identifier_degrades_without_dispatch() -> None:
    fetcher = FakeFetcher()
    resolver = ContentResolver(base_config(), fetcher=fetcher)

    assert await resolver.resolve_document("   ") == unavailable_document()
    assert await resolver.resolve_asset("") == ""
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_sequential_success_teaches_relay_preference() -> None:
    config = replace(
        base_config(),
        gateways=("https://gw-a.test/ipfs/",),
        relays=("direct=", "proxy=https://proxy.test/?u={url}"),
    )

    def responder(url: str):
        if url.startswith("https://proxy.test/"):
            return 0.0, json_bytes({"name": "proxied"})
        return 0.0, RuntimeError("cors")

    resolver = ContentResolver(config, fetcher=FakeFetcher(responder))

    resolution = await resolver.resolve_document_detailed("QmDoc")

    assert resolution.tier == "sequential_fallback"
    assert resolver.preferences.snapshot() == {"https://gw-a.test/ipfs/": "proxy"}

    resolver.cache.clear()
    repeat = await resolver.resolve_document_detailed("QmDoc")

    assert repeat.tier == "gateway_race"


@pytest.mark.asyncio
async def test_silent_local_node_falls_through_to_gateways() -> None:
    fetcher = FakeFetcher(lambda url: (0.0, json_bytes({"name": "From gateway"})))

    async with stalled_server() as api_url:
        config = replace(
            base_config(),
            enable_direct_node=True,
            node_api_url=api_url,
            direct_document_timeout_s=0.2,
        )
        resolver = ContentResolver(config, fetcher=fetcher)
        try:
            first = await asyncio.wait_for(
                resolver.resolve_document_detailed("QmStalled"), 3.0
            )
            second = await asyncio.wait_for(
                resolver.resolve_document_detailed("QmStalledToo"), 3.0
            )
        finally:
            await reset_direct_node()

    assert first.tier == "gateway_race"
    assert first.document == {"name": "From gateway"}
    assert second.tier == "gateway_race"
    assert resolver.direct_node_state == "uninitialized"
