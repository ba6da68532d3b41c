import logging
import mimetypes
import os
import shutil
import tempfile
from dataclasses import dataclass
from typing import BinaryIO, FrozenSet, List, Optional

from sqlalchemy.orm import Session

from sharezone import crud, schemas
from sharezone.core.exceptions import (
    Expired,
    FileNotFound,
    InternalError,
    InvalidFile,
    Locked,
    MissingField,
    TooLarge,
    ValidationFailed,
    ZoneError,
    ZoneNotFound,
)
from sharezone.crud import StoredFile
from sharezone.models import UploadBatch
from sharezone.services.hub import BroadcastHub
from sharezone.services.registry import load_active_zone, load_zone, require_fields
from sharezone.storage.gateway import BlobNotFound, StorageGateway

logger = logging.getLogger(__name__)

GENERIC_CONTENT_TYPE = "application/octet-stream"

ALLOWED_CONTENT_TYPES = frozenset({
    "application/pdf",

    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",

    "video/mp4",

    "application/msword",
    "application/vnd.ms-excel",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",    # docx
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",          # xlsx
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",  # pptx

    "application/zip",
    "application/x-zip-compressed",
})

AUDIO_CONTENT_TYPES = frozenset({
    "audio/mpeg",
    "audio/wav",
    "audio/x-wav",
    "audio/ogg",
    "audio/aac",
    "audio/mp4",
})


@dataclass
class IncomingFile:
    filename: str
    content_type: Optional[str]
    stream: BinaryIO
    size: Optional[int] = None


@dataclass
class DownloadDescriptor:
    file_id: int
    filename: str
    content_type: str
    size_bytes: int
    disposition: str  # "inline" or "attachment"
    path: Optional[str] = None
    url: Optional[str] = None


def clean_filename(filename: Optional[str]) -> str:
    # Some browsers send the client-side path along with the name
    name = os.path.basename((filename or "").replace("\\", "/")).strip()
    return name or "file"


class UploadCoordinator:
    """
    Validates upload batches against the zone's state, moves the bytes to
    the storage gateway and records them. A batch is all-or-nothing: records
    are committed in one transaction after every blob is stored, and blobs
    of a failed batch are deleted again.
    """

    def __init__(
        self,
        *,
        hub: BroadcastHub,
        storage: StorageGateway,
        max_file_size: int = 50 * 1024 * 1024,
        max_files: int = 10,
        allow_audio: bool = False,
    ):
        self.hub = hub
        self.storage = storage
        self.max_file_size = max_file_size
        self.max_files = max_files
        self.allowed_content_types: FrozenSet[str] = (
            ALLOWED_CONTENT_TYPES | AUDIO_CONTENT_TYPES if allow_audio else ALLOWED_CONTENT_TYPES
        )

    def resolve_content_type(self, incoming: IncomingFile) -> str:
        content_type = (incoming.content_type or "").split(";")[0].strip().lower()
        if not content_type or content_type == GENERIC_CONTENT_TYPE:
            guessed, _ = mimetypes.guess_type(incoming.filename or "")
            content_type = guessed or GENERIC_CONTENT_TYPE
        return content_type

    def _measure(self, incoming: IncomingFile) -> int:
        stream = incoming.stream
        if not stream.seekable():
            # Spool non-seekable input so it can be measured and re-read
            spooled = tempfile.SpooledTemporaryFile(max_size=1024 * 1024)
            shutil.copyfileobj(stream, spooled)
            incoming.stream = stream = spooled
        size = stream.seek(0, os.SEEK_END)
        stream.seek(0)
        return size

    def _discard(self, stored: List[StoredFile]) -> None:
        for item in stored:
            try:
                self.storage.delete(item.storage_handle)
            except Exception:
                # The reaper's orphan sweep picks it up later
                logger.warning("Failed to discard blob %s", item.storage_handle, exc_info=True)

    def submit_upload(
        self,
        db: Session,
        zone_id: str,
        *,
        uploader_username: str,
        message: Optional[str],
        files: List[IncomingFile],
    ) -> UploadBatch:
        require_fields(username=uploader_username)
        if not files:
            raise MissingField("No files uploaded", fields=["files"])
        if len(files) > self.max_files:
            raise ValidationFailed(f"At most {self.max_files} files can be uploaded at once", max_files=self.max_files)

        zone = load_active_zone(db, zone_id)
        if zone.uploads_locked:
            raise Locked()

        # Validate the whole batch before a single byte is stored
        prepared = []
        for incoming in files:
            name = clean_filename(incoming.filename)
            content_type = self.resolve_content_type(incoming)
            if content_type not in self.allowed_content_types:
                raise InvalidFile(f'File type not allowed: "{name}" ({content_type})', filename=name)
            size = self._measure(incoming)
            if size > self.max_file_size:
                raise TooLarge(
                    f'"{name}" is larger than {self.max_file_size / (1024 * 1024):g} MB',
                    filename=name,
                    max_bytes=self.max_file_size,
                )
            prepared.append((incoming, name, content_type, size))

        stored: List[StoredFile] = []
        try:
            for incoming, name, content_type, size in prepared:
                handle = self.storage.put(incoming.stream, content_type, name)
                stored.append(StoredFile(
                    original_name=name,
                    content_type=content_type,
                    size_bytes=size,
                    storage_handle=handle,
                ))
        except Exception as e:
            self._discard(stored)
            logger.exception("Failed to store upload batch for zone %s", zone_id)
            raise InternalError("Failed to store uploaded files") from e

        # The zone may have been locked, deleted or expired while bytes moved
        try:
            db.expire_all()
            zone = load_zone(db, zone_id)
            if zone.is_expired():
                raise Expired()
            if zone.uploads_locked:
                raise Locked()
        except ZoneError:
            self._discard(stored)
            raise

        clean_message = message.strip() if message and message.strip() else None
        try:
            batch = crud.batch.create_with_files(
                db,
                zone_id=zone_id,
                uploader_username=uploader_username.strip(),
                message=clean_message,
                files=stored,
            )
        except Exception as e:
            self._discard(stored)
            logger.exception("Failed to record upload batch for zone %s", zone_id)
            raise InternalError("Failed to record uploaded files") from e

        if batch is None:
            # Purged between the re-check and the commit
            self._discard(stored)
            logger.info("Zone %s disappeared before its upload batch was recorded", zone_id)
            raise ZoneNotFound()

        logger.info("Zone %s: %s uploaded %d file(s) in batch %s", zone_id, batch.uploader_username, len(stored), batch.id)
        self.hub.broadcast(zone_id, "zone_upload_batch", batch_payload(batch))
        return batch

    def get_download_descriptor(
        self, db: Session, zone_id: str, file_id: int, *, inline: bool = False
    ) -> DownloadDescriptor:
        # Checked on every call: files stop being served the moment a zone expires
        zone = load_active_zone(db, zone_id)

        record = crud.file.get_in_zone(db, zone_id=zone.id, file_id=file_id)
        if not record:
            raise FileNotFound()

        try:
            location = self.storage.get(record.storage_handle)
        except BlobNotFound:
            logger.warning("Blob %s of file %s is missing", record.storage_handle, record.id)
            raise FileNotFound("File no longer exists on server")

        return DownloadDescriptor(
            file_id=record.id,
            filename=record.original_name,
            content_type=record.content_type,
            size_bytes=record.size_bytes,
            disposition="inline" if inline else "attachment",
            path=location.path,
            url=location.url,
        )


def batch_payload(batch: UploadBatch) -> dict:
    return schemas.UploadBatch.model_validate(batch).model_dump(mode="json")
