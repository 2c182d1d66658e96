from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable
from urllib.parse import quote, urlsplit

URL_PLACEHOLDER = "{url}"
DIRECT_RELAY_NAME = "direct"


@dataclass(frozen=True)
class EndpointDescriptor:
    """A gateway base URL, plus what one race observed about it.

    ``latency_ms`` and ``succeeded`` are filled in per race and never carried
    over to the next call.
    """

    base_url: str
    index: int = 0
    latency_ms: int | None = None
    succeeded: bool | None = None

    def url_for(self, identifier: str) -> str:
        base = self.base_url if self.base_url.endswith("/") else f"{self.base_url}/"
        return f"{base}{identifier}"


@dataclass(frozen=True)
class RelayDescriptor:
    name: str
    template: str = ""

    @property
    def is_direct(self) -> bool:
        return not self.template

    def wrap(self, url: str) -> str:
        if self.is_direct:
            return url
        encoded = quote(url, safe="")
        if URL_PLACEHOLDER in self.template:
            return self.template.replace(URL_PLACEHOLDER, encoded)
        return f"{self.template}{encoded}"


def parse_relay(spec: str) -> RelayDescriptor:
    """Parse ``name=template`` or a bare template into a relay."""
    name, separator, template = spec.partition("=")
    if separator and "://" not in name:
        name = name.strip()
        template = template.strip()
        return RelayDescriptor(name=name or _relay_name(template), template=template)
    template = spec.strip()
    return RelayDescriptor(name=_relay_name(template), template=template)


def _relay_name(template: str) -> str:
    if not template:
        return DIRECT_RELAY_NAME
    host = urlsplit(template).hostname
    return host or template


def build_endpoints(base_urls: Iterable[str]) -> tuple[EndpointDescriptor, ...]:
    return tuple(
        EndpointDescriptor(base_url=base_url, index=index)
        for index, base_url in enumerate(base_urls)
    )


def build_relays(specs: Iterable[str]) -> tuple[RelayDescriptor, ...]:
    relays: list[RelayDescriptor] = []
    seen: set[str] = set()
    for spec in specs:
        relay = parse_relay(spec)
        if relay.name in seen:
            continue
        seen.add(relay.name)
        relays.append(relay)
    if not relays:
        relays.append(RelayDescriptor(name=DIRECT_RELAY_NAME))
    return tuple(relays)
