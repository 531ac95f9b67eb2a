"""Tests for the permission tree and inheritance resolution."""

from __future__ import annotations

import logging

import pytest

from rolecore import ConfigurationError, InheritanceResolver, PermissionTree, Role, resolve_permissions
from rolecore.permissions import is_concrete, split_permission


class TestGrammar:
    """Tests for permission string helpers."""

    def test_split(self) -> None:
        assert split_permission("api.users.view") == ["api", "users", "view"]
        assert split_permission("posts.*.") == ["posts", "*", ""]

    def test_concrete(self) -> None:
        assert is_concrete("api.users.view")
        assert not is_concrete("")
        assert not is_concrete("*")
        assert not is_concrete("api.*")
        assert not is_concrete("api.")
        assert not is_concrete("api..view")

    def test_non_string_is_not_concrete(self) -> None:
        assert not is_concrete(5)  # type: ignore[arg-type]
        assert not is_concrete(None)  # type: ignore[arg-type]
        assert not PermissionTree.from_patterns(["*"]).matches(5)  # type: ignore[arg-type]


class TestPermissionTreeMatching:
    """Tests for wildcard matching."""

    def test_exact_match(self) -> None:
        tree = PermissionTree.from_patterns(["posts.view"])
        assert tree.matches("posts.view")
        assert not tree.matches("posts.edit")
        assert not tree.matches("posts")
        assert not tree.matches("posts.view.all")

    def test_sole_wildcard_matches_everything(self) -> None:
        """'*' grants every non-empty concrete permission at any depth."""
        tree = PermissionTree.from_patterns(["*"])
        assert tree.matches("a")
        assert tree.matches("a.b")
        assert tree.matches("anything.at.all")
        assert not tree.matches("")

    def test_trailing_all_depth_wildcard(self) -> None:
        """'api.*' covers everything below api, but not api itself."""
        tree = PermissionTree.from_patterns(["api.*"])
        assert tree.matches("api.users.view")
        assert tree.matches("api.anything")
        assert not tree.matches("api")
        assert not tree.matches("other.users")

    def test_single_level_wildcard(self) -> None:
        """'api.*.' covers exactly one level below api."""
        tree = PermissionTree.from_patterns(["api.*."])
        assert tree.matches("api.status")
        assert not tree.matches("api.status.db")
        assert not tree.matches("api")

    def test_inner_wildcard(self) -> None:
        tree = PermissionTree.from_patterns(["images.*.view"])
        assert tree.matches("images.1.view")
        assert tree.matches("images.logo.view")
        assert not tree.matches("images.1.edit")
        assert not tree.matches("images.1")
        assert not tree.matches("images.1.view.raw")

    def test_case_sensitive(self) -> None:
        tree = PermissionTree.from_patterns(["posts.view"])
        assert not tree.matches("Posts.view")
        assert not tree.matches("posts.VIEW")

    def test_wildcard_queries_never_match(self) -> None:
        """A tree built from a pattern matches it only when the pattern is concrete."""
        for pattern in ("api.*", "api.*.", "*", "images.*.view"):
            tree = PermissionTree.from_patterns([pattern])
            assert not tree.matches(pattern), pattern
        assert PermissionTree.from_patterns(["api.users"]).matches("api.users")

    def test_empty_pattern_and_query(self) -> None:
        tree = PermissionTree()
        tree.insert("")
        assert tree.is_empty()
        assert not tree
        assert not tree.matches("")

    def test_all_depth_short_circuits(self) -> None:
        tree = PermissionTree.from_patterns(["a.*"])
        assert tree.matches("a.b.c.d.e")


class TestPermissionTreeInsertion:
    """Tests for wildcard branch construction."""

    def test_wildcard_snapshots_existing_literals(self) -> None:
        """Declaring 'posts.*.edit' after 'posts.drafts.view' keeps drafts.view reachable."""
        tree = PermissionTree.from_patterns(["posts.drafts.view", "posts.*.edit"])
        assert tree.matches("posts.drafts.view")
        assert tree.matches("posts.drafts.edit")
        assert tree.matches("posts.42.edit")

    def test_later_patterns_converge_on_wildcard_branch(self) -> None:
        """Once a level has a '*' branch, later patterns descend through it."""
        tree = PermissionTree.from_patterns(["a.*.x", "a.b.y"])
        assert tree.matches("a.b.y")
        assert tree.matches("a.z.y")
        assert tree.matches("a.z.x")

    def test_leaf_and_branch_coexist(self) -> None:
        tree = PermissionTree.from_patterns(["posts", "posts.view"])
        assert tree.matches("posts")
        assert tree.matches("posts.view")

    def test_explicit_non_grant(self) -> None:
        tree = PermissionTree.from_patterns({"posts.view": True, "posts.edit": False})
        assert tree.matches("posts.view")
        assert not tree.matches("posts.edit")

    def test_truthiness(self) -> None:
        """A tree is truthy once it records any marker, grant or not."""
        assert not PermissionTree()
        assert PermissionTree.from_patterns(["posts.view"])
        assert PermissionTree.from_patterns({"posts.edit": False})

    def test_copy_is_independent(self) -> None:
        tree = PermissionTree.from_patterns(["posts.view"])
        clone = tree.copy()
        clone.insert("posts.edit")
        assert clone.matches("posts.edit")
        assert not tree.matches("posts.edit")
        assert clone != tree

    def test_equality(self) -> None:
        a = PermissionTree.from_patterns(["posts.view", "api.*"])
        b = PermissionTree.from_patterns(["api.*", "posts.view"])
        assert a == b
        assert a.to_dict() == b.to_dict()


class TestPermissionTreeMerge:
    """Tests for overlaying trees."""

    def test_merge_unions_grants(self) -> None:
        tree = PermissionTree.from_patterns(["posts.view"])
        tree.merge(PermissionTree.from_patterns(["users.view"]))
        assert tree.matches("posts.view")
        assert tree.matches("users.view")

    def test_merge_overlay_wins(self) -> None:
        tree = PermissionTree.from_patterns(["posts.edit"])
        tree.merge(PermissionTree.from_patterns({"posts.edit": False}))
        assert not tree.matches("posts.edit")

    def test_merge_wildcard_keeps_existing_literals(self) -> None:
        tree = PermissionTree.from_patterns(["posts.drafts.view"])
        tree.merge(PermissionTree.from_patterns(["posts.*.edit"]))
        assert tree.matches("posts.drafts.view")
        assert tree.matches("posts.other.edit")

    def test_merge_does_not_share_nodes(self) -> None:
        source = PermissionTree.from_patterns(["posts.view"])
        target = PermissionTree().merge(source)
        target.insert("posts.edit")
        assert not source.matches("posts.edit")


def _roles(*declarations: dict) -> dict[str, Role]:
    return {d["id"]: Role(d) for d in declarations}


class TestInheritance:
    """Tests for role inheritance resolution."""

    def test_transitive_inheritance(self) -> None:
        roles = _roles(
            {"id": "viewer", "permissions": "posts.view"},
            {"id": "editor", "permissions": "posts.edit", "inherit": "viewer"},
            {"id": "admin", "permissions": ["users.*"], "inherit": ["editor"]},
        )
        tree = resolve_permissions(roles["admin"], roles)
        assert tree.matches("posts.view")
        assert tree.matches("posts.edit")
        assert tree.matches("users.delete")

    def test_resolution_is_idempotent(self) -> None:
        roles = _roles(
            {"id": "viewer", "permissions": ["posts.view", "posts.*."]},
            {"id": "editor", "permissions": "posts.*.edit", "inherit": "viewer"},
        )
        first = resolve_permissions(roles["editor"], roles)
        second = resolve_permissions(roles["editor"], roles)
        assert first == second
        assert first is not second

    def test_own_declaration_wins(self) -> None:
        roles = _roles(
            {"id": "base", "permissions": ["posts.edit", "posts.view"]},
            {"id": "restricted", "permissions": {"posts.edit": False}, "inherit": "base"},
        )
        tree = resolve_permissions(roles["restricted"], roles)
        assert tree.matches("posts.view")
        assert not tree.matches("posts.edit")

    def test_unknown_parent_is_ignored(self, caplog: pytest.LogCaptureFixture) -> None:
        roles = _roles({"id": "editor", "permissions": "posts.edit", "inherit": ["ghost"]})
        with caplog.at_level(logging.WARNING, logger="rolecore.permissions.inheritance"):
            tree = resolve_permissions(roles["editor"], roles)
        assert tree.matches("posts.edit")
        assert any("ghost" in r.getMessage() for r in caplog.records)

    def test_cycle_raises(self) -> None:
        roles = _roles(
            {"id": "a", "inherit": "b"},
            {"id": "b", "inherit": "c"},
            {"id": "c", "inherit": "a"},
        )
        with pytest.raises(ConfigurationError, match="cycle") as exc:
            resolve_permissions(roles["a"], roles)
        assert exc.value.details["cycle"] == ["a", "b", "c", "a"]

    def test_self_inheritance_raises(self) -> None:
        roles = _roles({"id": "loop", "inherit": "loop"})
        with pytest.raises(ConfigurationError, match="cycle"):
            resolve_permissions(roles["loop"], roles)

    def test_shared_ancestor_resolved_once(self) -> None:
        roles = _roles(
            {"id": "base", "permissions": "a.b"},
            {"id": "left", "inherit": "base"},
            {"id": "right", "inherit": "base"},
        )
        resolver = InheritanceResolver(roles)
        assert resolver.resolve("base") is resolver.resolve("base")
        resolved = resolver.resolve_all()
        assert set(resolved) == {"base", "left", "right"}
        assert resolved["left"].matches("a.b")
        assert resolved["left"] is not resolved["base"]

    def test_unknown_role_id(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown role"):
            InheritanceResolver({}).resolve("nobody")
