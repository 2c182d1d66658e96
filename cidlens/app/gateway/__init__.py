from .contracts import (
    EndpointDescriptor,
    RelayDescriptor,
    build_endpoints,
    build_relays,
)
from .race import race_asset, race_document
from .sequential import sequential_asset, sequential_document
from .subdomain import subdomain_asset, subdomain_document
from .transport import HttpFetcher, HttpxFetcher

__all__ = [
    "EndpointDescriptor",
    "HttpFetcher",
    "HttpxFetcher",
    "RelayDescriptor",
    "build_endpoints",
    "build_relays",
    "race_asset",
    "race_document",
    "sequential_asset",
    "sequential_document",
    "subdomain_asset",
    "subdomain_document",
]
