from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path

DEFAULT_GATEWAYS = (
    "https://gateway.pinata.cloud/ipfs/",
    "https://ipfs.io/ipfs/",
    "https://cloudflare-ipfs.com/ipfs/",
    "https://dweb.link/ipfs/",
)
DEFAULT_RELAYS = (
    "direct=",
    "corsproxy=https://corsproxy.io/?url={url}",
    "allorigins=https://api.allorigins.win/raw?url={url}",
)
DEFAULT_PUBLIC_GATEWAY = "https://gateway.pinata.cloud/ipfs/"
DEFAULT_SUBDOMAIN_HOST = "ipfs.dweb.link"
DEFAULT_NODE_API_URL = "http://127.0.0.1:5001"
DEFAULT_NODE_REQUIRED_PROTOCOLS = ("/ipfs/bitswap",)


@dataclass(frozen=True)
class AppConfig:
    app_name: str
    app_version: str
    environment: str
    enable_direct_node: bool
    node_api_url: str
    node_required_protocols: tuple[str, ...]
    node_verify_tls: bool
    node_max_connections: int
    gateways: tuple[str, ...]
    relays: tuple[str, ...]
    public_gateway: str
    subdomain_host: str
    direct_document_timeout_s: float
    direct_asset_timeout_s: float
    race_timeout_s: float
    sequential_timeout_s: float
    asset_full_tiering: bool


def _read_optional_env(name: str) -> str | None:
    value = os.getenv(name)
    if not value:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def _read_bool_env(name: str, default: bool) -> bool:
    value = _read_optional_env(name)
    if value is None:
        return default
    normalized = value.lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _read_int_env(name: str, default: int) -> int:
    value = _read_optional_env(name)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_seconds_env(name: str, default: float) -> float:
    value = _read_optional_env(name)
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_list_env(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = _read_optional_env(name)
    if value is None:
        return default
    items = tuple(item.strip() for item in value.split(",") if item.strip())
    return items if items else default


def _with_trailing_slash(url: str) -> str:
    return url if url.endswith("/") else f"{url}/"


def load_app_config() -> AppConfig:
    return AppConfig(
        app_name=os.getenv("APP_NAME", "cidlens content resolver"),
        app_version=os.getenv("APP_VERSION", "0.1.0"),
        environment=os.getenv("APP_ENV", "development"),
        enable_direct_node=_read_bool_env("CIDLENS_ENABLE_DIRECT_NODE", default=True),
        node_api_url=_read_optional_env("CIDLENS_NODE_API_URL")
        or DEFAULT_NODE_API_URL,
        node_required_protocols=_read_list_env(
            "CIDLENS_NODE_REQUIRED_PROTOCOLS", DEFAULT_NODE_REQUIRED_PROTOCOLS
        ),
        node_verify_tls=_read_bool_env("CIDLENS_NODE_VERIFY_TLS", default=True),
        node_max_connections=_read_int_env("CIDLENS_NODE_MAX_CONNECTIONS", default=16),
        gateways=tuple(
            _with_trailing_slash(gateway)
            for gateway in _read_list_env("CIDLENS_GATEWAYS", DEFAULT_GATEWAYS)
        ),
        relays=_read_list_env("CIDLENS_RELAYS", DEFAULT_RELAYS),
        public_gateway=_with_trailing_slash(
            _read_optional_env("CIDLENS_PUBLIC_GATEWAY") or DEFAULT_PUBLIC_GATEWAY
        ),
        subdomain_host=(
            _read_optional_env("CIDLENS_SUBDOMAIN_HOST") or DEFAULT_SUBDOMAIN_HOST
        ).strip("./"),
        direct_document_timeout_s=_read_seconds_env(
            "CIDLENS_DIRECT_DOCUMENT_TIMEOUT_S", default=10.0
        ),
        direct_asset_timeout_s=_read_seconds_env(
            "CIDLENS_DIRECT_ASSET_TIMEOUT_S", default=10.0
        ),
        race_timeout_s=_read_seconds_env("CIDLENS_RACE_TIMEOUT_S", default=8.0),
        sequential_timeout_s=_read_seconds_env(
            "CIDLENS_SEQUENTIAL_TIMEOUT_S", default=5.0
        ),
        asset_full_tiering=_read_bool_env("CIDLENS_ASSET_FULL_TIERING", default=True),
    )


def load_env_file(path: str = ".env") -> int:
    """Export ``KEY=value`` lines from a dotenv file without overriding.

    Returns the number of variables that were newly set.
    """
    env_path = Path(path)
    if not env_path.is_file():
        return 0

    exported = 0
    for raw_line in env_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip().removeprefix("export ").strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = (part.strip() for part in line.split("=", 1))
        if not key or key in os.environ:
            continue
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
            value = value[1:-1]
        os.environ[key] = value
        exported += 1
    return exported


def with_direct_node_disabled(config: AppConfig) -> AppConfig:
    if not config.enable_direct_node:
        return config
    return replace(config, enable_direct_node=False)
