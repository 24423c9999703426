"""Tests for contextroles.permissions matching and validation."""

from __future__ import annotations

import pytest
from contextroles.exceptions import InvalidPermissionError
from contextroles.permissions import (
    expand_permissions,
    is_valid_permission,
    match_any_permission,
    match_permission,
    validate_permission,
)


class TestMatchPermission:
    """match_permission semantics."""

    def test_exact_match(self):
        assert match_permission("post.create", "post.create") is True

    def test_exact_match_is_case_sensitive(self):
        assert match_permission("post.create", "Post.create") is False

    def test_global_wildcard_matches_everything(self):
        assert match_permission("*", "post.create") is True
        assert match_permission("*", "project.settings.update") is True

    def test_trailing_wildcard(self):
        assert match_permission("post.*", "post.create") is True
        assert match_permission("post.*", "post.delete") is True
        assert match_permission("post.*", "user.create") is False

    def test_leading_wildcard(self):
        assert match_permission("*.read", "post.read") is True
        assert match_permission("*.read", "post.write") is False

    def test_segment_count_must_match(self):
        """Wildcards are same-position placeholders, not suffix matches."""
        assert match_permission("post.*", "post.comment.create") is False
        assert match_permission("*.create", "post.comment.create") is False
        assert match_permission("post.comment.*", "post.comment") is False

    def test_multiple_wildcards(self):
        assert match_permission("*.metadata.*", "file.metadata.read") is True
        assert match_permission("*.metadata.*", "file.content.read") is False
        assert match_permission("*.metadata.*", "file.metadata") is False

    def test_all_wildcard_segments(self):
        assert match_permission("*.*", "a.b") is True
        assert match_permission("*.*", "a.b.c") is False

    def test_literal_segments_compared_exactly(self):
        assert match_permission("project.settings.update", "project.settings.read") is False


class TestMatchAnyPermission:
    """match_any_permission semantics."""

    def test_empty_patterns_never_match(self):
        assert match_any_permission([], "post.create") is False

    def test_any_pattern_suffices(self):
        patterns = ["files.*", "comments.*"]
        assert match_any_permission(patterns, "files.read") is True
        assert match_any_permission(patterns, "comments.create") is True
        assert match_any_permission(patterns, "settings.write") is False

    def test_adding_patterns_never_revokes(self):
        base = ["files.read"]
        assert match_any_permission(base, "files.read") is True
        assert match_any_permission([*base, "other.thing"], "files.read") is True

    def test_accepts_sets(self):
        assert match_any_permission(frozenset({"post.*"}), "post.read") is True


class TestValidatePermission:
    """validate_permission structural checks."""

    @pytest.mark.parametrize(
        "pattern",
        ["post.create", "*", "post.*", "*.read", "*.metadata.*", "project_1.settings.update"],
    )
    def test_valid(self, pattern):
        validate_permission(pattern)
        assert is_valid_permission(pattern) is True

    def test_empty_rejected(self):
        with pytest.raises(InvalidPermissionError) as exc_info:
            validate_permission("")
        assert "empty" in exc_info.value.message

    def test_single_segment_rejected(self):
        with pytest.raises(InvalidPermissionError) as exc_info:
            validate_permission("post")
        assert "two parts" in exc_info.value.message

    @pytest.mark.parametrize("pattern", ["post..create", ".post", "post."])
    def test_empty_segment_rejected(self, pattern):
        with pytest.raises(InvalidPermissionError):
            validate_permission(pattern)

    @pytest.mark.parametrize("pattern", ["post.cre-ate", "post.create!", "post. create", "po*st.read"])
    def test_invalid_characters_rejected(self, pattern):
        with pytest.raises(InvalidPermissionError):
            validate_permission(pattern)

    def test_error_carries_code_and_pattern(self):
        with pytest.raises(InvalidPermissionError) as exc_info:
            validate_permission("bad")
        assert exc_info.value.code == "INVALID_PERMISSION"
        assert exc_info.value.details["permission"] == "bad"

    def test_is_valid_false_for_invalid(self):
        assert is_valid_permission("nodot") is False


class TestExpandPermissions:
    """expand_permissions resolves patterns against known permissions."""

    KNOWN = ["post.read", "post.create", "user.read", "user.delete", "post.read"]

    def test_subset_in_known_order(self):
        assert expand_permissions(["user.*", "post.read"], self.KNOWN) == (
            "post.read",
            "user.read",
            "user.delete",
        )

    def test_duplicates_removed(self):
        assert expand_permissions(["post.*"], self.KNOWN) == ("post.read", "post.create")

    def test_global_wildcard_expands_everything(self):
        assert expand_permissions(["*"], self.KNOWN) == (
            "post.read",
            "post.create",
            "user.read",
            "user.delete",
        )

    def test_no_patterns(self):
        assert expand_permissions([], self.KNOWN) == ()
