"""
Storage gateway contract.

The zone services never touch file bytes directly: they hand streams to a
gateway and keep the opaque handle it returns. ``delete`` must be idempotent;
it returns False when the blob was already gone.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import BinaryIO, Iterator, Optional, Protocol, Tuple


class StorageError(Exception):
    """The backend failed to store, locate or remove a blob."""


class BlobNotFound(StorageError):
    pass


@dataclass(frozen=True)
class BlobLocation:
    # Exactly one of these is set: a local path to stream, or a URL to redirect to
    path: Optional[str] = None
    url: Optional[str] = None


class StorageGateway(Protocol):
    def put(self, stream: BinaryIO, content_type: str, filename: str) -> str:
        ...

    def get(self, handle: str) -> BlobLocation:
        ...

    def delete(self, handle: str) -> bool:
        ...

    def iter_blobs(self) -> Iterator[Tuple[str, datetime]]:
        """Yield (handle, last_modified) for every blob the backend holds."""
        ...
