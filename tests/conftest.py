from __future__ import annotations

import pytest

import cidlens.app.node.service as node_service
from cidlens.app.resolution.service import reset_content_resolver
from cidlens.app.runtime.store import runtime_store


@pytest.fixture(autouse=True)
def reset_runtime_store() -> None:
    runtime_store.clear()
    node_service._direct_node_guards.clear()
    reset_content_resolver()
