"""Extension and size rules consulted before a file is served."""

from __future__ import annotations

from pathlib import PurePath

from config import AccessConfig


class AccessPolicy:
    def __init__(self, config: AccessConfig | None = None) -> None:
        config = config or AccessConfig()
        self._allowed = frozenset(_normalize(ext) for ext in config.allowed_extensions)
        self._blocked = frozenset(_normalize(ext) for ext in config.blocked_extensions)
        self._max_file_size = config.max_file_size

    @property
    def max_file_size(self) -> int:
        return self._max_file_size

    def is_allowed_extension(self, filename: str | PurePath) -> bool:
        """Blocked extensions always lose; a non-empty allow list is exhaustive."""
        path = PurePath(filename)
        extension = path.suffix.lower()
        if not extension and path.name.startswith("."):
            # Dotfiles such as ".env" have no suffix; treat the name as one.
            extension = path.name.lower()
        if extension in self._blocked:
            return False
        if self._allowed:
            return extension in self._allowed
        return True

    def is_allowed_size(self, size_bytes: int) -> bool:
        if self._max_file_size == 0:
            return True
        return size_bytes <= self._max_file_size


def _normalize(extension: str) -> str:
    extension = extension.strip().lower()
    return extension if extension.startswith(".") else f".{extension}"
