"""Single-image attachment management for product records."""

from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TypeVar

from redis.exceptions import RedisError

from app.core.config import Settings
from app.core.exceptions import NotFoundError, StorageError, ValidationError
from app.storage.base import AssetStorage
from app.storage.local_storage import LocalAssetStorage
from app.storage.redis_storage import RedisAssetStorage

logger = logging.getLogger(__name__)

T = TypeVar("T")

REF_TIMESTAMP_FORMAT = "%Y%m%d%H%M%S%f"
REF_PATTERN = re.compile(r"^(?P<stamp>\d{20})-[0-9a-f]{32}(\.[a-z0-9]+)?$")
DEFAULT_EXTENSIONS = frozenset({"jpeg", "jpg", "png", "gif", "svg", "webp"})


@dataclass(frozen=True)
class ImageUpload:
    """Raw image payload as received from the request layer."""

    content: bytes
    filename: str
    content_type: str | None = None

    @property
    def extension(self) -> str:
        return Path(self.filename or "").suffix.lower().lstrip(".")


def new_asset_ref(original_name: str | None, now: datetime | None = None) -> str:
    """Timestamp-qualified, collision-resistant reference keeping the extension."""
    now = now or datetime.now(timezone.utc)
    suffix = Path(original_name or "").suffix.lower()
    if not re.fullmatch(r"\.[a-z0-9]+", suffix):
        suffix = ""
    return f"{now.strftime(REF_TIMESTAMP_FORMAT)}-{uuid.uuid4().hex}{suffix}"


def asset_ref_created_at(ref: str) -> datetime | None:
    """Recover the creation time embedded in a reference, if it has one."""
    match = REF_PATTERN.match(ref)
    if not match:
        return None
    return datetime.strptime(match.group("stamp"), REF_TIMESTAMP_FORMAT).replace(
        tzinfo=timezone.utc
    )


class AttachmentManager:
    """Own the record → asset relation: store, replace, release, retrieve.

    Storage calls run on a small thread pool so each one can be bounded by
    ``timeout`` seconds; backend failures and timeouts surface as
    ``StorageError``.

    A timeout does not stop the call: a running future cannot be cancelled,
    so the backend call keeps its worker until it returns. A write that
    finishes late leaves an asset no record points at, which the orphan
    sweep releases once it is past the grace period. Size ``max_workers``
    (``STORAGE_WORKERS``) for the stalls the backend is expected to have.
    """

    def __init__(
        self,
        storage: AssetStorage,
        *,
        timeout: float = 10.0,
        max_bytes: int = 2 * 1024 * 1024,
        allowed_extensions: Iterable[str] = DEFAULT_EXTENSIONS,
        max_workers: int = 4,
    ) -> None:
        self.storage = storage
        self.timeout = timeout
        self.max_bytes = max_bytes
        self.allowed_extensions = frozenset(allowed_extensions)
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="asset-io"
        )

    def _bounded(self, action: str, fn: Callable[..., T], *args: Any) -> T:
        future = self._executor.submit(fn, *args)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeoutError as e:
            # Only drops the call if it has not started yet
            future.cancel()
            raise StorageError(f"Timed out {action} after {self.timeout}s") from e
        except (OSError, RedisError, ValueError) as e:
            raise StorageError(f"Failed {action}: {e}") from e

    def validate(self, upload: ImageUpload) -> None:
        """Reject unusable uploads before any storage is touched."""
        if not upload.content:
            raise ValidationError({"image": "is empty"})
        if len(upload.content) > self.max_bytes:
            raise ValidationError(
                {"image": f"exceeds the {self.max_bytes} byte limit"}
            )
        if upload.extension not in self.allowed_extensions:
            allowed = ", ".join(sorted(self.allowed_extensions))
            raise ValidationError({"image": f"must be one of: {allowed}"})

    def store(self, content: bytes, original_name: str | None) -> str:
        ref = new_asset_ref(original_name)
        self._bounded(f"storing asset {ref}", self.storage.write, ref, content)
        logger.info(f"Stored asset {ref} ({len(content)} bytes)")
        return ref

    def replace(
        self,
        old_ref: str | None,
        content: bytes,
        original_name: str | None,
        swap: Callable[[str], str | None] | None = None,
    ) -> str:
        """Store the new asset, then let go of the one it replaces.

        ``swap`` receives the new reference once it is durably stored and
        returns the reference it displaced, if any; without ``swap`` the
        displaced reference is ``old_ref``. If the swap raises, the new asset
        is released and the old one is kept. Failure to release the displaced
        asset is logged only; the orphan sweep collects it later.
        """
        new_ref = self.store(content, original_name)
        displaced = old_ref
        if swap is not None:
            try:
                displaced = swap(new_ref)
            except Exception:
                self.release_quietly(new_ref)
                raise
        if displaced and displaced != new_ref:
            self.release_quietly(displaced)
        return new_ref

    def release(self, ref: str) -> None:
        self._bounded(f"releasing asset {ref}", self.storage.delete, ref)
        logger.info(f"Released asset {ref}")

    def release_quietly(self, ref: str) -> bool:
        """Best-effort release used for cleanup paths; never raises StorageError."""
        try:
            self.release(ref)
        except StorageError as e:
            logger.warning(
                f"Could not release asset {ref}, leaving it for the sweep: {e}"
            )
            return False
        return True

    def retrieve(self, ref: str) -> bytes:
        content = self._bounded(f"reading asset {ref}", self.storage.read, ref)
        if content is None:
            raise NotFoundError(f"Asset {ref} not found")
        return content

    def exists(self, ref: str) -> bool:
        return self._bounded(f"checking asset {ref}", self.storage.exists, ref)

    def list_refs(self) -> list[str]:
        return self._bounded("listing assets", lambda: list(self.storage.list_refs()))

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)


def build_asset_storage(settings: Settings) -> AssetStorage:
    if settings.asset_backend == "redis":
        return RedisAssetStorage.from_url(
            settings.redis_url, prefix=settings.asset_key_prefix
        )
    return LocalAssetStorage(settings.assets_dir)


def build_attachment_manager(settings: Settings) -> AttachmentManager:
    return AttachmentManager(
        build_asset_storage(settings),
        timeout=settings.storage_timeout_seconds,
        max_workers=settings.storage_workers,
        max_bytes=settings.max_image_bytes,
        allowed_extensions=settings.allowed_image_extensions,
    )
