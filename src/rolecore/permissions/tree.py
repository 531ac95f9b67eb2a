"""Hierarchical wildcard permission tree.

A trie over dot-separated permission segments. Supported pattern forms::

    "posts.view"    exact capability
    "*"             everything, at every depth
    "servers.*"     anything below ``servers`` (any depth)
    "images.*.view" any single segment between ``images`` and ``view``
    "posts.*."      anything exactly one level below ``posts``, no deeper

Markers hold a boolean. A pattern declared ``False`` records an explicit
non-grant at that exact path, which is what lets a role's own declaration
override a grant it inherited. Only ``True`` markers satisfy a match.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from .constants import SINGLE_LEVEL, WILDCARD, is_concrete, split_permission


class _Node:
    """One level of the tree.

    ``children`` maps a segment to the next level (``"*"`` is the
    single-level wildcard branch), ``leaves`` holds the markers of patterns
    that end at this level, ``all_depth`` is the marker set by a final ``*``.
    """

    __slots__ = ("children", "leaves", "all_depth")

    def __init__(self) -> None:
        self.children: dict[str, _Node] = {}
        self.leaves: dict[str, bool] = {}
        self.all_depth: bool | None = None

    def clone(self) -> _Node:
        node = _Node()
        node.all_depth = self.all_depth
        node.leaves = dict(self.leaves)
        node.children = {name: child.clone() for name, child in self.children.items()}
        return node

    def seed_wildcard(self) -> _Node:
        """Create the ``*`` branch from the union of the literal branches already here."""
        wildcard = _Node()
        for name, child in list(self.children.items()):
            if name != WILDCARD:
                wildcard.overlay(child)
        self.children[WILDCARD] = wildcard
        return wildcard

    def overlay(self, other: _Node) -> None:
        """Merge ``other`` into this node; ``other`` wins on conflicting markers."""
        if other.all_depth is not None:
            self.all_depth = other.all_depth
        self.leaves.update(other.leaves)

        if WILDCARD in other.children and WILDCARD not in self.children:
            self.seed_wildcard()
        wildcard = self.children.get(WILDCARD)

        # Literal branches first: a "*" branch always post-dates the literals it snapshotted.
        ordered = [(k, v) for k, v in other.children.items() if k != WILDCARD]
        if WILDCARD in other.children:
            ordered.append((WILDCARD, other.children[WILDCARD]))

        for name, child in ordered:
            if wildcard is not None:
                target = wildcard
            else:
                target = self.children.setdefault(name, _Node())
            target.overlay(child)

    def is_empty(self) -> bool:
        return self.all_depth is None and not self.leaves and not self.children

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.all_depth is not None:
            data["all"] = self.all_depth
        if self.leaves:
            data["leaves"] = dict(sorted(self.leaves.items()))
        if self.children:
            data["children"] = {name: self.children[name].to_dict() for name in sorted(self.children)}
        return data


class PermissionTree:
    """Wildcard-aware permission set.

    Example::

        tree = PermissionTree.from_patterns(["posts.*.", "api.*"])
        tree.matches("posts.42")          # True
        tree.matches("posts.42.comments") # False
        tree.matches("api.users.view")    # True
        tree.matches("api")               # False
    """

    __slots__ = ("_root",)

    def __init__(self) -> None:
        self._root = _Node()

    @classmethod
    def from_patterns(cls, patterns: Mapping[str, bool] | Iterable[str]) -> PermissionTree:
        """Build a tree from patterns, or from a ``pattern -> granted`` mapping."""
        tree = cls()
        if isinstance(patterns, Mapping):
            for pattern, granted in patterns.items():
                tree.insert(pattern, granted=bool(granted))
        else:
            for pattern in patterns:
                tree.insert(pattern)
        return tree

    def insert(self, pattern: str, *, granted: bool = True) -> None:
        """Record ``pattern`` in the tree. Empty patterns are ignored."""
        if not pattern:
            return

        segments = split_permission(pattern)
        node = self._root

        for seg in segments[:-1]:
            wildcard = node.children.get(WILDCARD)
            if wildcard is not None:
                node = wildcard
            elif seg == WILDCARD:
                node = node.seed_wildcard()
            else:
                node = node.children.setdefault(seg, _Node())

        last = segments[-1]
        if last == WILDCARD:
            node.all_depth = granted
        else:
            node.leaves[last] = granted

    def matches(self, permission: str) -> bool:
        """Check if a concrete permission is granted by this tree.

        Descends through ``*`` in preference to the literal segment and never
        backtracks. Wildcard or empty queries never match.
        """
        if not is_concrete(permission):
            return False

        segments = split_permission(permission)
        last_index = len(segments) - 1
        node = self._root

        for index, seg in enumerate(segments):
            if node.all_depth is True:
                return True

            if index == last_index:
                if node.leaves.get(seg) is True:
                    return True
                wildcard = node.children.get(WILDCARD)
                return wildcard is not None and wildcard.leaves.get(SINGLE_LEVEL) is True

            nxt = node.children.get(WILDCARD)
            if nxt is None:
                nxt = node.children.get(seg)
            if nxt is None:
                return False
            node = nxt

        return False

    def merge(self, other: PermissionTree) -> PermissionTree:
        """Overlay ``other`` onto this tree in place and return ``self``.

        Markers present in ``other`` replace markers at the same path here.
        """
        self._root.overlay(other._root)
        return self

    def copy(self) -> PermissionTree:
        tree = PermissionTree()
        tree._root = self._root.clone()
        return tree

    def is_empty(self) -> bool:
        return self._root.is_empty()

    def __bool__(self) -> bool:
        return not self.is_empty()

    def to_dict(self) -> dict[str, Any]:
        """Structural dump, stable across equal trees."""
        return self._root.to_dict()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PermissionTree):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"PermissionTree({self.to_dict()!r})"


__all__ = [
    "PermissionTree",
]
