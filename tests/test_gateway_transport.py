import httpx
import pytest

from cidlens.app.gateway.transport import HttpxFetcher
from cidlens.app.resolution.service import ContentResolver
from tests.fakes import base_config


@pytest.mark.asyncio
async def test_fetcher_reuses_one_pooled_client() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        if request.url.host == "missing.test":
            return httpx.Response(404)
        return httpx.Response(200, content=b"{}")

    fetcher = HttpxFetcher(transport=httpx.MockTransport(handler))

    assert await fetcher.fetch("https://gw-a.test/ipfs/QmA", timeout=1.0) == b"{}"
    client = fetcher._client
    assert await fetcher.fetch("https://gw-b.test/ipfs/QmB", timeout=1.0) == b"{}"
    with pytest.raises(httpx.HTTPStatusError):
        await fetcher.fetch("https://missing.test/ipfs/QmC", timeout=1.0)

    assert client is not None
    assert fetcher._client is client
    assert len(seen) == 3

    await fetcher.aclose()

    assert fetcher._client is None
    assert client.is_closed


@pytest.mark.asyncio
async def test_resolver_closes_only_the_fetcher_it_created() -> None:
    transport = httpx.MockTransport(lambda _: httpx.Response(200))
    injected = HttpxFetcher(transport=transport)
    await injected.fetch("https://gw-a.test/ipfs/QmA", timeout=1.0)

    await ContentResolver(base_config(), fetcher=injected).aclose()

    assert injected._client is not None
    assert not injected._client.is_closed
    await injected.aclose()
