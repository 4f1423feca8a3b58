from __future__ import annotations

from ..models.context import MANAGE_DATA_IMPORT, OperatorContext

"""Capability gate called first by every pipeline stage."""

__all__ = [
    "Unauthorized",
    "require_capability",
]


class Unauthorized(Exception):
    def __init__(self, capability: str) -> None:
        super().__init__(f"operator lacks the '{capability}' capability")
        self.capability = capability


def require_capability(context: OperatorContext, capability: str = MANAGE_DATA_IMPORT) -> None:
    if not context.has(capability):
        raise Unauthorized(capability)
