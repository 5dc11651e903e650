"""Error taxonomy for index, store, and query operations.

"Not found" is never an exception: lookups return ``None`` or an empty
result and the caller decides how to render it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path


class ObsidxError(Exception):
    """Base class for every failure the CLI reports to the user."""


class StoreUnavailableError(ObsidxError):
    """A store could not be opened or created at its on-disk location."""

    def __init__(self, location: Path, reason: str) -> None:
        self.location = location
        self.reason = reason
        super().__init__(f"Store unavailable at '{location}': {reason}")


class MalformedRecordError(ObsidxError):
    """A stored structured field failed to deserialize.

    Raised and caught inside the stores; callers see the field's default.
    """

    def __init__(self, field: str, raw: str) -> None:
        self.field = field
        self.raw = raw
        super().__init__(f"Malformed stored field '{field}': {raw[:80]!r}")


class InvalidQueryError(ObsidxError):
    """A free-text query could not be parsed."""

    def __init__(self, query: str, reason: str) -> None:
        self.query = query
        self.reason = reason
        super().__init__(f"Invalid query {query!r}: {reason}")


class UnknownCollectionError(ObsidxError):
    """A collection name is not present in the registry."""

    def __init__(self, name: str, known: Iterable[str] = ()) -> None:
        self.name = name
        self.known = sorted(known)
        hint = f" (known: {', '.join(self.known)})" if self.known else ""
        super().__init__(f"Unknown collection '{name}'{hint}")
