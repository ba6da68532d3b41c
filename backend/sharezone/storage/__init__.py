from .gateway import BlobLocation, BlobNotFound, StorageError, StorageGateway
from .local import LocalStorageGateway

__all__ = [
    "BlobLocation",
    "BlobNotFound",
    "StorageError",
    "StorageGateway",
    "LocalStorageGateway",
]
