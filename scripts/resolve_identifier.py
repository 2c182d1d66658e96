from __future__ import annotations

import argparse
import asyncio
import json
import logging
from dataclasses import asdict

from cidlens.app.node.service import reset_direct_node
from cidlens.app.resolution.service import ContentResolver
from cidlens.core.config import (
    load_app_config,
    load_env_file,
    with_direct_node_disabled,
)


async def _main_async(identifier: str, asset: bool, use_direct_node: bool) -> dict:
    config = load_app_config()
    if not use_direct_node:
        config = with_direct_node_disabled(config)
    resolver = ContentResolver(config)
    try:
        if asset:
            resolution = await resolver.resolve_asset_detailed(identifier)
        else:
            resolution = await resolver.resolve_document_detailed(identifier)
    finally:
        await resolver.aclose()
        await reset_direct_node()
    return asdict(resolution)


def main() -> None:
    load_env_file()
    parser = argparse.ArgumentParser(
        description="Resolve an IPFS identifier to metadata or an asset reference"
    )
    parser.add_argument("identifier", help="CID, ipfs:// URI or gateway URL")
    parser.add_argument(
        "--asset",
        action="store_true",
        help="Resolve binary content to a data URI instead of a JSON document",
    )
    parser.add_argument(
        "--no-direct-node",
        action="store_true",
        help="Skip the local IPFS node and go straight to gateways",
    )
    parser.add_argument("--verbose", action="store_true", help="Log tier transitions")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s %(message)s",
    )
    result = asyncio.run(
        _main_async(args.identifier, args.asset, not args.no_direct_node)
    )
    print(json.dumps(result, indent=2))


if __name__ == "__main__":
    main()
