"""
String-keyed persistent storage.

Each key is kept as one UTF-8 text file under a root directory. Writes go to a
temporary file in the same directory and are swapped in with os.replace, so a
reader never observes a half-written value.
"""
from __future__ import annotations
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class FileKeyValueStore:
    """Opaque key -> string store backed by a directory."""

    def __init__(self, root: str | os.PathLike):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        if not _KEY_RE.match(key or ""):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.root / f"{key}.json"

    def get_item(self, key: str) -> Optional[str]:
        fp = self._path(key)
        if not fp.exists():
            return None
        return fp.read_text(encoding="utf-8")

    def set_item(self, key: str, value: str) -> None:
        fp = self._path(key)
        self.root.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=str(self.root))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_path, fp)
        except Exception:
            logger.exception(f"[storage] write failed key={key}")
            try:
                os.unlink(tmp_path)
            except OSError:
                logger.warning(f"[storage] failed to cleanup tmp file: {tmp_path}")
            raise
        logger.debug(f"[storage] wrote key={key} bytes={len(value)}")

    def remove_item(self, key: str) -> None:
        fp = self._path(key)
        try:
            fp.unlink()
            logger.debug(f"[storage] removed key={key}")
        except FileNotFoundError:
            pass
