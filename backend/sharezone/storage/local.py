import logging
import os
import re
import shutil
import uuid
from datetime import datetime, timezone
from typing import BinaryIO, Iterator, List, Tuple

from sharezone.storage.gateway import BlobLocation, BlobNotFound, StorageError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
PART_SUFFIX = ".part"

# 32 hex chars, optional short extension, optional in-progress suffix
HANDLE_RE = re.compile(r"^[0-9a-f]{32}(\.[a-z0-9]{1,10})?(\.part)?$")


def _extension(filename: str) -> str:
    ext = os.path.splitext(filename or "")[1].lower()
    if re.fullmatch(r"\.[a-z0-9]{1,10}", ext):
        return ext
    return ""


class LocalStorageGateway:
    """
    Blobs on local disks. New blobs go to the storage root with the most free
    space; lookups scan every root, so roots can be added at any time.
    """

    def __init__(self, storage_paths: List[str]):
        if not storage_paths:
            raise StorageError("No storage paths configured.")
        self.storage_paths = list(storage_paths)

        # Ensure all storage paths exist
        for path in self.storage_paths:
            try:
                os.makedirs(path, exist_ok=True)
            except OSError as e:
                logger.warning("Could not create storage path %s: %s", path, e)

    def _best_storage_path(self) -> str:
        best_path = None
        max_free_space = -1

        for path in self.storage_paths:
            try:
                os.makedirs(path, exist_ok=True)
                usage = shutil.disk_usage(path)
                if usage.free > max_free_space:
                    max_free_space = usage.free
                    best_path = path
            except OSError as e:
                logger.warning("Could not check disk usage for path %s: %s", path, e)
                continue

        if best_path is None:
            raise StorageError("No usable storage paths found.")

        return best_path

    def _check_handle(self, handle: str) -> None:
        if not handle or not HANDLE_RE.match(handle):
            raise BlobNotFound(f"Invalid storage handle: {handle!r}")

    def put(self, stream: BinaryIO, content_type: str, filename: str) -> str:
        handle = uuid.uuid4().hex + _extension(filename)
        final_path = os.path.join(self._best_storage_path(), handle)
        temp_path = final_path + PART_SUFFIX

        try:
            with open(temp_path, "wb") as out:
                shutil.copyfileobj(stream, out, CHUNK_SIZE)
            os.replace(temp_path, final_path)
        except OSError as e:
            try:
                os.remove(temp_path)
            except FileNotFoundError:
                pass
            raise StorageError(f"Failed to store blob for {filename!r}") from e

        logger.debug("Stored blob %s (%s) at %s", handle, content_type, final_path)
        return handle

    def get(self, handle: str) -> BlobLocation:
        self._check_handle(handle)
        for root in self.storage_paths:
            candidate = os.path.join(root, handle)
            if os.path.isfile(candidate):
                return BlobLocation(path=candidate)
        raise BlobNotFound(f"Blob {handle} not found")

    def delete(self, handle: str) -> bool:
        try:
            self._check_handle(handle)
        except BlobNotFound:
            return False

        removed = False
        for root in self.storage_paths:
            try:
                os.remove(os.path.join(root, handle))
                removed = True
            except FileNotFoundError:
                continue
            except OSError as e:
                raise StorageError(f"Failed to delete blob {handle}") from e
        return removed

    def iter_blobs(self) -> Iterator[Tuple[str, datetime]]:
        for root in self.storage_paths:
            try:
                entries = list(os.scandir(root))
            except FileNotFoundError:
                continue
            for entry in entries:
                if not entry.is_file() or not HANDLE_RE.match(entry.name):
                    continue
                try:
                    mtime = entry.stat().st_mtime
                except FileNotFoundError:
                    continue
                modified = datetime.fromtimestamp(mtime, tz=timezone.utc).replace(tzinfo=None)
                yield entry.name, modified
