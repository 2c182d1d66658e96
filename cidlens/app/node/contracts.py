from __future__ import annotations

from dataclasses import dataclass

from cidlens.core.config import AppConfig

NODE_STATE_UNINITIALIZED = "uninitialized"
NODE_STATE_READY = "ready"
NODE_STATE_UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class DirectNodeSettings:
    api_url: str
    required_protocols: tuple[str, ...]
    verify_tls: bool = True
    max_connections: int = 16
    init_timeout_s: float = 5.0


@dataclass(frozen=True)
class NodeIdentity:
    peer_id: str
    agent_version: str
    protocols: tuple[str, ...]
    addresses: tuple[str, ...] = tuple()


def direct_node_settings(config: AppConfig) -> DirectNodeSettings:
    return DirectNodeSettings(
        api_url=config.node_api_url.rstrip("/"),
        required_protocols=config.node_required_protocols,
        verify_tls=config.node_verify_tls,
        max_connections=config.node_max_connections,
    )
