"""Local filesystem asset storage."""

from __future__ import annotations

import logging
import os
import re
import tempfile
from collections.abc import Iterator
from pathlib import Path

from app.storage.base import AssetStorage

logger = logging.getLogger(__name__)

SAFE_REF = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
TEMP_SUFFIX = ".part"


class LocalAssetStorage(AssetStorage):
    """Keep each asset as one file directly under ``root``."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def is_valid_ref(ref: str) -> bool:
        return bool(
            SAFE_REF.match(ref) and ".." not in ref and not ref.endswith(TEMP_SUFFIX)
        )

    def path_for(self, ref: str) -> Path:
        """Map a reference to its file, refusing anything that could leave root."""
        if not self.is_valid_ref(ref):
            raise ValueError(f"Invalid asset reference: {ref!r}")
        return self.root / ref

    def write(self, ref: str, content: bytes) -> None:
        target = self.path_for(ref)
        # Write to a sibling temp file first so readers never see a partial asset
        fd, tmp_name = tempfile.mkstemp(dir=self.root, suffix=TEMP_SUFFIX)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug(f"Wrote asset {ref} ({len(content)} bytes) to {target}")

    def read(self, ref: str) -> bytes | None:
        # A malformed reference cannot name a stored asset
        if not self.is_valid_ref(ref):
            return None
        try:
            return self.path_for(ref).read_bytes()
        except FileNotFoundError:
            return None

    def delete(self, ref: str) -> None:
        self.path_for(ref).unlink(missing_ok=True)

    def exists(self, ref: str) -> bool:
        return self.is_valid_ref(ref) and self.path_for(ref).is_file()

    def list_refs(self) -> Iterator[str]:
        for path in self.root.iterdir():
            if path.is_file() and not path.name.endswith(TEMP_SUFFIX):
                yield path.name
