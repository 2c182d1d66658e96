from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class IdentifierForm(str, Enum):
    BARE = "bare"
    SCHEME = "scheme"
    GATEWAY_URL = "gateway_url"
    NESTED_GATEWAY_URL = "nested_gateway_url"


@dataclass(frozen=True)
class ParsedIdentifier:
    form: IdentifierForm
    identifier: str

    @property
    def root(self) -> str:
        return self.identifier.split("/", 1)[0]

    @property
    def path(self) -> str:
        parts = self.identifier.split("/", 1)
        return parts[1] if len(parts) == 2 else ""
