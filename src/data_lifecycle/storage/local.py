"""Local filesystem binary store.

Keys map to paths under ``root``.  Writes go to a temporary file in the
target directory and are moved into place with ``os.replace``.

Example mapping:
    key = "2024/05/a1b2.jpg"
    real_path = "<root>/2024/05/a1b2.jpg"
"""

import logging
import os
import tempfile
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

logger = logging.getLogger(__name__)


class LocalFileStore:
    """Filesystem implementation of ``BinaryStore``.

    Args:
        root: Directory holding the uploaded files.  Created on first write.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _resolve(self, key: str) -> Path:
        """Translate a key into a path under ``root``.

        Raises:
            ValueError: If the key escapes the root (path traversal).
        """
        key = key.replace("\\", "/").strip("/")
        base = os.path.abspath(self.root)
        path = os.path.abspath(os.path.join(base, key))
        if not key or not path.startswith(base + os.sep):
            raise ValueError(f"Suspicious key outside store root: {key!r}")
        return Path(path)

    def stat(self, key: str) -> int | None:
        path = self._resolve(key)
        if not path.is_file():
            return None
        return path.stat().st_size

    def open_read(self, key: str) -> BinaryIO:
        return open(self._resolve(key), "rb")

    def write_atomic(self, key: str, chunks: Iterator[bytes]) -> int:
        path = self._resolve(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".part")
        written = 0
        try:
            with os.fdopen(fd, "wb") as f:
                for chunk in chunks:
                    f.write(chunk)
                    written += len(chunk)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.remove(tmp_name)
            raise
        return written

    def list(self) -> list[str]:
        if not self.root.is_dir():
            return []
        keys: list[str] = []
        for dirpath, _, files in os.walk(self.root):
            for name in files:
                if name.endswith(".part") and name.startswith("."):
                    continue
                full = os.path.join(dirpath, name)
                keys.append(os.path.relpath(full, self.root).replace("\\", "/"))
        return sorted(keys)
