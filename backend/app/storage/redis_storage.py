"""Redis-backed asset storage so separate API/worker instances share images."""

from __future__ import annotations

import logging
from collections.abc import Iterator

from redis import Redis

from app.storage.base import AssetStorage
from app.utils.redis_client import create_redis_client

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "assets:image:"


class RedisAssetStorage(AssetStorage):
    """Store each asset as one binary value under ``prefix + ref`` (no TTL)."""

    def __init__(self, client: Redis, prefix: str = DEFAULT_PREFIX) -> None:
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = DEFAULT_PREFIX) -> "RedisAssetStorage":
        # Binary payloads, so no decode_responses
        return cls(create_redis_client(url, decode_responses=False), prefix=prefix)

    def _key(self, ref: str) -> str:
        return f"{self.prefix}{ref}"

    def write(self, ref: str, content: bytes) -> None:
        self.client.set(self._key(ref), content)
        logger.debug(f"Stored asset {ref} in Redis ({len(content)} bytes)")

    def read(self, ref: str) -> bytes | None:
        return self.client.get(self._key(ref))

    def delete(self, ref: str) -> None:
        self.client.delete(self._key(ref))

    def exists(self, ref: str) -> bool:
        return bool(self.client.exists(self._key(ref)))

    def list_refs(self) -> Iterator[str]:
        for key in self.client.scan_iter(match=f"{self.prefix}*"):
            if isinstance(key, bytes):
                key = key.decode("utf-8")
            yield key[len(self.prefix):]
