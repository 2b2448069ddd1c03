"""Set of managed paths for one profile with containment queries."""

from __future__ import annotations

from collections import Counter
from pathlib import PurePosixPath
from typing import Iterable, Iterator

from .paths import dot_forms, normalize


def _strict_ancestors(path: str) -> list[str]:
    parts = PurePosixPath(path).parts
    return ["/".join(parts[:index]) for index in range(len(parts) - 1, 0, -1)]


class MembershipIndex:
    """Normalized managed paths plus a count of every strict ancestor.

    Exact lookups compare normalized strings only. The containment queries also
    try each compared path with a leading dot added and removed, so ``nvim`` and
    ``.nvim`` denote the same scope there.
    """

    def __init__(self, paths: Iterable[str] = ()) -> None:
        self._paths: set[str] = set()
        self._ancestors: Counter[str] = Counter()
        for path in paths:
            self.add(path)

    def add(self, path: str) -> str:
        normalized = normalize(path)
        if normalized not in self._paths:
            self._paths.add(normalized)
            self._ancestors.update(_strict_ancestors(normalized))
        return normalized

    def discard(self, path: str) -> None:
        normalized = normalize(path)
        if normalized not in self._paths:
            return
        self._paths.remove(normalized)
        self._ancestors.subtract(_strict_ancestors(normalized))
        self._ancestors += Counter()

    def contains_exact(self, path: str) -> bool:
        return normalize(path) in self._paths

    def is_inside_managed(self, path: str) -> bool:
        """Return ``True`` when an ancestor directory of ``path`` is managed."""

        for ancestor in _strict_ancestors(normalize(path)):
            if any(form in self._paths for form in dot_forms(ancestor)):
                return True
        return False

    def directory_contains_managed(self, directory: str) -> bool:
        """Return ``True`` when a managed path lies strictly below ``directory``."""

        normalized = normalize(directory)
        return any(self._ancestors[form] > 0 for form in dot_forms(normalized))

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and path in self._paths

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._paths))

    def __len__(self) -> int:
        return len(self._paths)

    def __repr__(self) -> str:
        return f"MembershipIndex({sorted(self._paths)!r})"
