"""Resource lifecycle tracking."""

from stackdock.resources.registry import (
    ResourceIdGenerator,
    ResourceRegistry,
    validate_declaration,
)

__all__ = [
    "ResourceIdGenerator",
    "ResourceRegistry",
    "validate_declaration",
]
