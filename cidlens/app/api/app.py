from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from cidlens.app.identifiers.service import parse_identifier, to_gateway_url
from cidlens.app.media.service import is_data_uri
from cidlens.app.node.service import reset_direct_node
from cidlens.app.resolution.service import ContentResolver
from cidlens.core.config import AppConfig, load_app_config


class NormalizedIdentifierResponse(BaseModel):
    raw: str
    form: str
    identifier: str
    gateway_url: str


class DocumentResponse(BaseModel):
    identifier: str
    document: Any
    tier: str
    degraded: bool


class AssetResponse(BaseModel):
    identifier: str
    reference: str
    inline: bool
    tier: str
    degraded: bool


def create_app(
    config: AppConfig | None = None,
    resolver: ContentResolver | None = None,
) -> FastAPI:
    app_config = config or load_app_config()
    content_resolver = resolver or ContentResolver(app_config)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        try:
            yield
        finally:
            await content_resolver.aclose()
            await reset_direct_node()

    app = FastAPI(
        title=app_config.app_name, version=app_config.app_version, lifespan=lifespan
    )

    @app.get("/")
    async def root() -> JSONResponse:
        return JSONResponse(
            content={
                "name": app_config.app_name,
                "version": app_config.app_version,
                "environment": app_config.environment,
                "docs": "/docs",
            }
        )

    @app.get("/health")
    async def health() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/api/v1/status")
    async def status() -> dict[str, object]:
        return {
            "direct_node": content_resolver.direct_node_state,
            "gateways": [endpoint.base_url for endpoint in content_resolver.endpoints],
            "relays": [relay.name for relay in content_resolver.relays],
            "relay_preferences": content_resolver.preferences.snapshot(),
            "cached_entries": len(content_resolver.cache),
            "asset_full_tiering": app_config.asset_full_tiering,
        }

    @app.get("/api/v1/identifiers/normalize")
    async def normalize_identifier(
        identifier: str = Query(min_length=1),
    ) -> NormalizedIdentifierResponse:
        parsed = parse_identifier(identifier)
        return NormalizedIdentifierResponse(
            raw=identifier,
            form=parsed.form.value,
            identifier=parsed.identifier,
            gateway_url=to_gateway_url(identifier, app_config.public_gateway),
        )

    @app.get("/api/v1/resolve/document")
    async def resolve_document(
        identifier: str = Query(min_length=1),
    ) -> DocumentResponse:
        resolution = await content_resolver.resolve_document_detailed(identifier)
        return DocumentResponse(
            identifier=resolution.identifier,
            document=resolution.document,
            tier=resolution.tier,
            degraded=resolution.degraded,
        )

    @app.get("/api/v1/resolve/asset")
    async def resolve_asset(
        identifier: str = Query(min_length=1),
    ) -> AssetResponse:
        resolution = await content_resolver.resolve_asset_detailed(identifier)
        return AssetResponse(
            identifier=resolution.identifier,
            reference=resolution.reference,
            inline=is_data_uri(resolution.reference),
            tier=resolution.tier,
            degraded=resolution.degraded,
        )

    @app.delete("/api/v1/cache")
    async def clear_cache() -> dict[str, bool]:
        content_resolver.clear_session()
        return {"cleared": True}

    return app
