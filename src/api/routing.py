"""Route classification tables, built once at startup."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from src.core import constants


class RouteKind(str, Enum):
    EXCLUDED = "excluded"
    REDIRECT = "redirect"
    PUBLIC = "public"
    PROTECTED = "protected"
    UNGATED = "ungated"


def _segments(path: str) -> list[str]:
    return [seg for seg in path.split("/") if seg]


def normalize_path(path: str) -> str:
    """Collapse duplicate and trailing slashes: ``//a/b/`` -> ``/a/b``."""
    return "/" + "/".join(_segments(path))


@dataclass
class _TrieNode:
    children: dict[str, _TrieNode] = field(default_factory=dict)
    terminal: bool = False


class PathTrie:
    """Prefix matcher on whole path segments.

    ``/dashboard`` matches ``/dashboard`` and ``/dashboard/x``, but not
    ``/dashboards``.
    """

    def __init__(self, prefixes: Iterable[str] = ()) -> None:
        self._root = _TrieNode()
        for prefix in prefixes:
            self.add(prefix)

    def add(self, prefix: str) -> None:
        node = self._root
        for seg in _segments(prefix):
            node = node.children.setdefault(seg, _TrieNode())
        node.terminal = True

    def matches(self, path: str) -> bool:
        node = self._root
        if node.terminal:
            return True
        for seg in _segments(path):
            child = node.children.get(seg)
            if child is None:
                return False
            if child.terminal:
                return True
            node = child
        return False


class RouteMatcher:
    """Exact-match set plus prefix trie."""

    def __init__(self, exact: Iterable[str] = (), prefixes: Iterable[str] = ()) -> None:
        self._exact = frozenset(normalize_path(p) for p in exact)
        self._trie = PathTrie(prefixes)

    def matches(self, path: str) -> bool:
        return path in self._exact or self._trie.matches(path)


@dataclass(frozen=True)
class RouteDecision:
    kind: RouteKind
    path: str
    target: str | None = None  # redirect destination


class RouteTable:
    """Classifies a request path for the route gate.

    Order: excluded, redirect, public, protected, otherwise ungated.
    """

    def __init__(
        self,
        *,
        excluded: RouteMatcher,
        redirects: dict[str, str],
        public: RouteMatcher,
        protected: RouteMatcher,
    ) -> None:
        self._excluded = excluded
        self._redirects = {normalize_path(k): v for k, v in redirects.items()}
        self._public = public
        self._protected = protected

    @classmethod
    def default(cls) -> RouteTable:
        return cls(
            excluded=RouteMatcher(constants.EXCLUDED_EXACT, constants.EXCLUDED_PREFIXES),
            redirects=constants.ROUTE_REDIRECTS,
            public=RouteMatcher(constants.PUBLIC_EXACT, constants.PUBLIC_PREFIXES),
            protected=RouteMatcher(prefixes=constants.PROTECTED_PREFIXES),
        )

    def classify(self, raw_path: str) -> RouteDecision:
        path = normalize_path(raw_path)

        if self._excluded.matches(path) or _is_asset(path):
            return RouteDecision(RouteKind.EXCLUDED, path)

        target = self._redirects.get(path)
        if target is not None:
            return RouteDecision(RouteKind.REDIRECT, path, target)

        if self._public.matches(path):
            return RouteDecision(RouteKind.PUBLIC, path)
        if self._protected.matches(path):
            return RouteDecision(RouteKind.PROTECTED, path)
        return RouteDecision(RouteKind.UNGATED, path)


def _is_asset(path: str) -> bool:
    segments = _segments(path)
    return bool(segments) and "." in segments[-1]
