"""Exception types raised while rehosting document assets."""

from __future__ import annotations


class RehostError(Exception):
    """Base class for failures local to a single asset."""


class DecodeError(RehostError):
    """An inline base64 payload could not be decoded."""


class FetchError(RehostError):
    """A remote image could not be downloaded."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class StorageError(RehostError):
    """The object store rejected an operation."""


class StorageWriteError(StorageError):
    """Writing an object to the store failed."""


class UnsupportedFileError(RehostError):
    """A direct upload was refused because of its type or size."""
