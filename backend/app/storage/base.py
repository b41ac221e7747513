"""Storage interface for binary assets addressed by opaque references."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable


class AssetStorage(ABC):
    """Backend contract used by the attachment manager.

    Implementations raise their native errors (``OSError``, ``RedisError``);
    the manager translates them into ``StorageError``.
    """

    @abstractmethod
    def write(self, ref: str, content: bytes) -> None:
        """Durably persist ``content`` under ``ref``."""

    @abstractmethod
    def read(self, ref: str) -> bytes | None:
        """Return stored content, or None when nothing is stored under ``ref``."""

    @abstractmethod
    def delete(self, ref: str) -> None:
        """Remove ``ref``; a missing asset is not an error."""

    @abstractmethod
    def list_refs(self) -> Iterable[str]:
        """Every reference currently stored."""

    def exists(self, ref: str) -> bool:
        return self.read(ref) is not None
