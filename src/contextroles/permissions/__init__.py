"""Permission strings and wildcard matching.

Defines:
- match_permission(): Dot-segmented wildcard match of a pattern against a permission
- match_any_permission(): Match against a collection of patterns
- validate_permission(): Reject malformed patterns at declaration time
- expand_permissions(): Resolve patterns against a list of known permissions
"""

from .matcher import (
    SEPARATOR,
    WILDCARD,
    expand_permissions,
    is_valid_permission,
    match_any_permission,
    match_permission,
    validate_permission,
)

__all__ = [
    "SEPARATOR",
    "WILDCARD",
    "expand_permissions",
    "is_valid_permission",
    "match_any_permission",
    "match_permission",
    "validate_permission",
]
