"""Error taxonomy shared by the record store, query builder and lifecycle."""

from __future__ import annotations


class CatalogError(Exception):
    """Base class for errors reported to callers of the catalog core."""


class ValidationError(CatalogError, ValueError):
    """Malformed or missing input; no state was changed.

    ``fields`` maps each offending field name to a short reason.
    """

    def __init__(self, fields: dict[str, str], message: str | None = None) -> None:
        self.fields = dict(fields)
        if message is None:
            message = "Invalid field(s): " + ", ".join(sorted(self.fields))
        super().__init__(message)


class NotFoundError(CatalogError, LookupError):
    """Unknown product id (or asset reference)."""


class InvalidStateError(CatalogError):
    """Operation not allowed in the record's current lifecycle state."""


class StorageError(CatalogError):
    """Asset write/read/remove failed or timed out."""
