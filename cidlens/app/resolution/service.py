from __future__ import annotations

import logging
from typing import Awaitable, Callable

from cidlens.app.cache.service import RelayPreferenceTable, ResolutionCache
from cidlens.app.gateway.contracts import build_endpoints, build_relays
from cidlens.app.gateway.race import race_asset, race_document
from cidlens.app.gateway.sequential import sequential_asset, sequential_document
from cidlens.app.gateway.subdomain import subdomain_asset, subdomain_document
from cidlens.app.gateway.transport import HttpFetcher, HttpxFetcher
from cidlens.app.identifiers.service import normalize
from cidlens.app.node.contracts import direct_node_settings
from cidlens.app.node.service import DirectNodeResolver, get_direct_node_guard
from cidlens.app.observability.service import emit_resolution_event
from cidlens.app.resolution.contracts import (
    TIER_CACHE,
    TIER_DEGRADE,
    TIER_DIRECT_NODE,
    TIER_GATEWAY_RACE,
    TIER_SEQUENTIAL,
    TIER_SUBDOMAIN,
    AssetResolution,
    Document,
    DocumentResolution,
    ResolutionOutcome,
    ResultKind,
    Success,
)
from cidlens.app.resolution.degrade import (
    fallback_asset_reference,
    unavailable_document,
)
from cidlens.core.config import AppConfig, load_app_config

LOGGER = logging.getLogger(__name__)

TierAttempt = Callable[[], Awaitable[ResolutionOutcome]]


def build_direct_node_resolver(config: AppConfig) -> DirectNodeResolver | None:
    if not config.enable_direct_node:
        return None
    return DirectNodeResolver(
        get_direct_node_guard(direct_node_settings(config)),
        document_timeout_s=config.direct_document_timeout_s,
        asset_timeout_s=config.direct_asset_timeout_s,
    )


class ContentResolver:
    """Resolve identifiers through cache, direct node and gateway tiers.

    Tier order is fixed: cache, direct node, gateway race, sequential
    fallback, subdomain fallback, then the degrade policy. Resolution
    failures are never raised to the caller.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        fetcher: HttpFetcher | None = None,
        direct_node: DirectNodeResolver | None = None,
        cache: ResolutionCache | None = None,
        preferences: RelayPreferenceTable | None = None,
    ) -> None:
        self._config = config
        self._owned_fetcher: HttpxFetcher | None = None
        if fetcher is None:
            self._owned_fetcher = fetcher = HttpxFetcher()
        self._fetcher = fetcher
        self._direct_node = direct_node or build_direct_node_resolver(config)
        self.cache = cache or ResolutionCache()
        self.preferences = preferences or RelayPreferenceTable()
        self.endpoints = build_endpoints(config.gateways)
        self.relays = build_relays(config.relays)

    @property
    def direct_node_state(self) -> str:
        if self._direct_node is None:
            return "disabled"
        return self._direct_node.state

    def _document_tiers(self, identifier: str) -> list[tuple[str, TierAttempt]]:
        config = self._config
        tiers: list[tuple[str, TierAttempt]] = []
        direct_node = self._direct_node
        if direct_node is not None:
            tiers.append(
                (TIER_DIRECT_NODE, lambda: direct_node.attempt_document(identifier))
            )
        tiers.extend(
            [
                (
                    TIER_GATEWAY_RACE,
                    lambda: race_document(
                        identifier,
                        self.endpoints,
                        self.relays,
                        fetcher=self._fetcher,
                        preferences=self.preferences,
                        timeout_s=config.race_timeout_s,
                    ),
                ),
                (
                    TIER_SEQUENTIAL,
                    lambda: sequential_document(
                        identifier,
                        self.endpoints,
                        self.relays,
                        fetcher=self._fetcher,
                        preferences=self.preferences,
                        timeout_s=config.sequential_timeout_s,
                    ),
                ),
                (
                    TIER_SUBDOMAIN,
                    lambda: subdomain_document(
                        identifier,
                        self.relays,
                        fetcher=self._fetcher,
                        host=config.subdomain_host,
                        timeout_s=config.sequential_timeout_s,
                    ),
                ),
            ]
        )
        return tiers

    def _asset_tiers(self, identifier: str) -> list[tuple[str, TierAttempt]]:
        config = self._config
        tiers: list[tuple[str, TierAttempt]] = []
        direct_node = self._direct_node
        if direct_node is not None:
            tiers.append(
                (TIER_DIRECT_NODE, lambda: direct_node.attempt_asset(identifier))
            )
        if not config.asset_full_tiering:
            return tiers
        tiers.extend(
            [
                (
                    TIER_GATEWAY_RACE,
                    lambda: race_asset(
                        identifier,
                        self.endpoints,
                        self.relays,
                        fetcher=self._fetcher,
                        preferences=self.preferences,
                        timeout_s=config.race_timeout_s,
                    ),
                ),
                (
                    TIER_SEQUENTIAL,
                    lambda: sequential_asset(
                        identifier,
                        self.endpoints,
                        self.relays,
                        fetcher=self._fetcher,
                        preferences=self.preferences,
                        timeout_s=config.sequential_timeout_s,
                    ),
                ),
                (
                    TIER_SUBDOMAIN,
                    lambda: subdomain_asset(
                        identifier,
                        self.relays,
                        fetcher=self._fetcher,
                        host=config.subdomain_host,
                        timeout_s=config.sequential_timeout_s,
                    ),
                ),
            ]
        )
        return tiers

    async def _run_tiers(
        self,
        identifier: str,
        kind: ResultKind,
        tiers: list[tuple[str, TierAttempt]],
    ) -> tuple[Success | None, str]:
        for tier, attempt in tiers:
            outcome = await attempt()
            if isinstance(outcome, Success):
                emit_resolution_event(
                    "tier_succeeded",
                    identifier=identifier,
                    kind=kind.value,
                    logger=LOGGER,
                    tier=tier,
                    latency_ms=outcome.latency_ms,
                    endpoint=outcome.endpoint,
                    relay=outcome.relay,
                )
                return outcome, tier
            emit_resolution_event(
                "tier_failed",
                identifier=identifier,
                kind=kind.value,
                logger=LOGGER,
                tier=tier,
                reason=outcome.reason,
            )
        return None, TIER_DEGRADE

    async def resolve_document_detailed(self, raw: object) -> DocumentResolution:
        identifier = normalize(raw)
        kind = ResultKind.DOCUMENT
        if not identifier:
            return DocumentResolution(
                identifier=identifier,
                document=unavailable_document(),
                tier=TIER_DEGRADE,
                degraded=True,
            )

        cached = self.cache.get(identifier, kind)
        if cached is not None and not isinstance(cached, str):
            emit_resolution_event(
                "cache_hit", identifier=identifier, kind=kind.value, logger=LOGGER
            )
            return DocumentResolution(
                identifier=identifier, document=cached, tier=TIER_CACHE
            )

        success, tier = await self._run_tiers(
            identifier, kind, self._document_tiers(identifier)
        )
        if success is not None and not isinstance(success.payload, str):
            self.cache.put(identifier, kind, success.payload)
            return DocumentResolution(
                identifier=identifier, document=success.payload, tier=tier
            )

        emit_resolution_event(
            "degraded", identifier=identifier, kind=kind.value, logger=LOGGER
        )
        return DocumentResolution(
            identifier=identifier,
            document=unavailable_document(),
            tier=TIER_DEGRADE,
            degraded=True,
        )

    async def resolve_asset_detailed(self, raw: object) -> AssetResolution:
        identifier = normalize(raw)
        kind = ResultKind.ASSET
        if not identifier:
            return AssetResolution(
                identifier=identifier, reference="", tier=TIER_DEGRADE, degraded=True
            )

        cached = self.cache.get(identifier, kind)
        if isinstance(cached, str):
            emit_resolution_event(
                "cache_hit", identifier=identifier, kind=kind.value, logger=LOGGER
            )
            return AssetResolution(
                identifier=identifier, reference=cached, tier=TIER_CACHE
            )

        success, tier = await self._run_tiers(
            identifier, kind, self._asset_tiers(identifier)
        )
        if success is not None and isinstance(success.payload, str):
            self.cache.put(identifier, kind, success.payload)
            return AssetResolution(
                identifier=identifier, reference=success.payload, tier=tier
            )

        emit_resolution_event(
            "degraded", identifier=identifier, kind=kind.value, logger=LOGGER
        )
        return AssetResolution(
            identifier=identifier,
            reference=fallback_asset_reference(identifier, self._config.public_gateway),
            tier=TIER_DEGRADE,
            degraded=True,
        )

    async def resolve_document(self, raw: object) -> Document:
        return (await self.resolve_document_detailed(raw)).document

    async def resolve_asset(self, raw: object) -> str:
        return (await self.resolve_asset_detailed(raw)).reference

    def clear_session(self) -> None:
        self.cache.clear()
        self.preferences.clear()

    async def aclose(self) -> None:
        if self._owned_fetcher is not None:
            await self._owned_fetcher.aclose()


_default_resolver: ContentResolver | None = None


def get_content_resolver() -> ContentResolver:
    global _default_resolver
    if _default_resolver is None:
        _default_resolver = ContentResolver(load_app_config())
    return _default_resolver


def reset_content_resolver() -> None:
    global _default_resolver
    _default_resolver = None


async def resolve_document(raw: object) -> Document:
    return await get_content_resolver().resolve_document(raw)


async def resolve_asset(raw: object) -> str:
    return await get_content_resolver().resolve_asset(raw)
