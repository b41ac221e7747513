"""Redis client construction with TLS handling for hosted providers."""

from __future__ import annotations

import ssl
from typing import Any

from redis import Redis


def normalize_redis_url(url: str) -> str:
    """Upstash only accepts TLS, so plain redis:// URLs are upgraded."""
    if ".upstash.io" in url and url.startswith("redis://"):
        return url.replace("redis://", "rediss://", 1)
    return url


def create_redis_client(url: str, **kwargs: Any) -> Redis:
    """Build a client from a URL.

    ``kwargs`` go straight to ``Redis.from_url`` (``decode_responses``,
    ``socket_connect_timeout``...). Asset payloads are binary, so callers
    storing images leave ``decode_responses`` off.
    """
    url = normalize_redis_url(url)
    client = Redis.from_url(url, **kwargs)

    # Hosted TLS endpoints present certificates the default store may not trust
    if url.startswith("rediss://"):
        connection_kwargs = getattr(client.connection_pool, "connection_kwargs", None)
        if connection_kwargs is not None:
            connection_kwargs["ssl_cert_reqs"] = ssl.CERT_NONE

    return client
