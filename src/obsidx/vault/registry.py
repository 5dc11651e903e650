"""Read-only registry of named collections (name → vault root)."""

from __future__ import annotations

from types import MappingProxyType
from typing import TYPE_CHECKING

from obsidx.errors import UnknownCollectionError

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path


class CollectionRegistry:
    """Lookup table injected at call time; never mutated after construction."""

    def __init__(self, roots: Mapping[str, Path] | None = None) -> None:
        self._roots: Mapping[str, Path] = MappingProxyType(dict(roots or {}))

    def resolve(self, name: str | None) -> Path | None:
        """Return the root for *name*.

        ``None`` means "use the literal vault argument, unscoped".
        """
        if name is None:
            return None
        try:
            return self._roots[name]
        except KeyError:
            raise UnknownCollectionError(name, self._roots) from None

    @property
    def names(self) -> list[str]:
        return sorted(self._roots)

    def __contains__(self, name: object) -> bool:
        return name in self._roots
