"""Binary store protocol.

The binary store holds the files the upload endpoint wrote (asset images).
The lifecycle manager only stats, lists, reads and (on import) writes them;
contents are never interpreted.

Keys are relative POSIX paths under the store root, e.g. ``"a1b2.jpg"`` or
``"2024/05/a1b2.jpg"``.
"""

from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO, Protocol


class BinaryStore(Protocol):
    """Interface used by the asset file collector and the image restore."""

    root: Path

    def stat(self, key: str) -> int | None:
        """Return the file size in bytes, or ``None`` if it does not exist."""
        ...

    def open_read(self, key: str) -> BinaryIO:
        """Open a stored file for binary reading."""
        ...

    def write_atomic(self, key: str, chunks: Iterator[bytes]) -> int:
        """Write a file so readers never observe a partial file.

        Returns:
            Number of bytes written.
        """
        ...

    def list(self) -> list[str]:
        """All keys in the store, sorted."""
        ...
