from __future__ import annotations

from dataclasses import dataclass, field

"""Operator context handed to every pipeline stage."""

__all__ = [
    "MANAGE_DATA_IMPORT",
    "OperatorContext",
]

MANAGE_DATA_IMPORT = "manage_data_import"


@dataclass(frozen=True)
class OperatorContext:
    tenant_id: str
    user_id: str
    capabilities: frozenset[str] = field(default_factory=frozenset)

    def has(self, capability: str) -> bool:
        return capability in self.capabilities
