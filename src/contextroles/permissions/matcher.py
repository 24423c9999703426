"""Dot-segmented permission matching.

Permissions are ``resource.action`` strings (``"post.create"``,
``"project.settings.update"``). A pattern may use ``*`` as a whole segment to
match any single segment in the same position::

    match_permission("post.*", "post.create")          # True
    match_permission("*.metadata.*", "a.metadata.b")   # True
    match_permission("post.*", "post.comment.create")  # False (segment count)
    match_permission("*", "anything.at.all")           # True
"""

from __future__ import annotations

import re
from typing import Iterable

from ..exceptions import InvalidPermissionError

WILDCARD = "*"
SEPARATOR = "."

_SEGMENT_RE = re.compile(r"[A-Za-z0-9_]+")


def match_permission(pattern: str, permission: str) -> bool:
    """Check whether ``pattern`` grants ``permission``.

    Identical strings always match and a lone ``*`` matches everything.
    Otherwise both sides must have the same number of segments, and each
    pattern segment must be ``*`` or equal the permission segment
    (case-sensitive).
    """
    if pattern == permission:
        return True
    if pattern == WILDCARD:
        return True

    pattern_parts = pattern.split(SEPARATOR)
    permission_parts = permission.split(SEPARATOR)
    if len(pattern_parts) != len(permission_parts):
        return False

    return all(
        p == WILDCARD or p == q for p, q in zip(pattern_parts, permission_parts)
    )


def match_any_permission(patterns: Iterable[str], permission: str) -> bool:
    """True if at least one pattern matches ``permission``."""
    return any(match_permission(pattern, permission) for pattern in patterns)


def validate_permission(pattern: str) -> None:
    """Validate a permission or permission pattern.

    Raises:
        InvalidPermissionError: If the pattern is empty, has a single
            non-wildcard segment, has an empty segment, or contains characters
            outside ``[A-Za-z0-9_]`` in a non-wildcard segment.
    """
    if not pattern:
        raise InvalidPermissionError("permission cannot be empty", permission=pattern)

    if pattern == WILDCARD:
        return

    parts = pattern.split(SEPARATOR)
    if len(parts) < 2:
        raise InvalidPermissionError(
            "permission must have at least two parts (resource.action)",
            permission=pattern,
        )

    for part in parts:
        if not part:
            raise InvalidPermissionError("permission parts cannot be empty", permission=pattern)
        if part == WILDCARD:
            continue
        if not _SEGMENT_RE.fullmatch(part):
            raise InvalidPermissionError(
                f"permission contains invalid characters: {pattern!r}",
                permission=pattern,
            )


def is_valid_permission(pattern: str) -> bool:
    try:
        validate_permission(pattern)
    except InvalidPermissionError:
        return False
    return True


def expand_permissions(
    patterns: Iterable[str],
    known_permissions: Iterable[str],
) -> tuple[str, ...]:
    """Resolve patterns against a list of concrete permissions.

    Returns the known permissions matched by at least one pattern, without
    duplicates and in the order of ``known_permissions``. Useful to show what
    a role can actually do.

    Example::

        expand_permissions(["post.*"], ["post.read", "post.create", "user.read"])
        # ("post.read", "post.create")
    """
    pattern_list = list(patterns)
    if not pattern_list:
        return ()

    seen: set[str] = set()
    result: list[str] = []
    for permission in known_permissions:
        if permission in seen:
            continue
        if match_any_permission(pattern_list, permission):
            seen.add(permission)
            result.append(permission)
    return tuple(result)


__all__ = [
    "SEPARATOR",
    "WILDCARD",
    "expand_permissions",
    "is_valid_permission",
    "match_any_permission",
    "match_permission",
    "validate_permission",
]
