"""Binary store for uploaded asset files."""

from data_lifecycle.storage.base import BinaryStore
from data_lifecycle.storage.local import LocalFileStore

__all__ = ["BinaryStore", "LocalFileStore"]
