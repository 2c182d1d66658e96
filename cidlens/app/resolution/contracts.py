from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

Document = Union[dict[str, Any], list[Any]]
Payload = Union[Document, str]

TIER_CACHE = "cache"
TIER_DIRECT_NODE = "direct_node"
TIER_GATEWAY_RACE = "gateway_race"
TIER_SEQUENTIAL = "sequential_fallback"
TIER_SUBDOMAIN = "subdomain_fallback"
TIER_DEGRADE = "degrade"


class ResultKind(str, Enum):
    DOCUMENT = "document"
    ASSET = "asset"


class ResolutionAttemptError(Exception):
    pass


class MalformedContentError(ResolutionAttemptError):
    pass


class DirectNodeUnavailable(ResolutionAttemptError):
    pass


@dataclass(frozen=True)
class Success:
    payload: Payload
    latency_ms: int
    endpoint: str | None = None
    relay: str | None = None

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    reason: str
    endpoint: str | None = None
    relay: str | None = None

    @property
    def ok(self) -> bool:
        return False


ResolutionOutcome = Union[Success, Failure]


@dataclass(frozen=True)
class DocumentResolution:
    identifier: str
    document: Document
    tier: str
    degraded: bool = False


@dataclass(frozen=True)
class AssetResolution:
    identifier: str
    reference: str
    tier: str
    degraded: bool = False


def failure_reason(exc: BaseException) -> str:
    message = str(exc).strip()
    if not message:
        return exc.__class__.__name__
    return f"{exc.__class__.__name__}: {message}"
