from dataclasses import dataclass
from typing import Iterable, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from sharezone.crud.base import CRUDBase
from sharezone.models.upload import UploadBatch, FileRecord
from sharezone.models.zone import Zone
from sharezone.utils.timeutils import utcnow


@dataclass
class StoredFile:
    """A blob already written to the storage gateway, waiting for its record."""
    original_name: str
    content_type: str
    size_bytes: int
    storage_handle: str


class CRUDUploadBatch(CRUDBase[UploadBatch]):
    def get_by_zone_with_files(self, db: Session, *, zone_id: str) -> List[UploadBatch]:
        return (
            db.query(UploadBatch)
            .options(selectinload(UploadBatch.files))
            .filter(UploadBatch.zone_id == zone_id)
            .order_by(UploadBatch.created_at.asc(), UploadBatch.id.asc())
            .all()
        )

    def create_with_files(
        self, db: Session, *, zone_id: str, uploader_username: str, message: Optional[str], files: List[StoredFile]
    ) -> Optional[UploadBatch]:
        """
        Persist the batch and all of its file records in a single commit,
        so readers never observe a partial batch.

        Returns None, with nothing written, when the zone is gone or
        soft-deleted by the time the transaction runs.
        """
        now = utcnow()
        try:
            live_zone = (
                db.query(Zone.id)
                .filter(Zone.id == zone_id, Zone.is_deleted.is_(False))
                .with_for_update()
                .first()
            )
            if live_zone is None:
                db.rollback()
                return None

            batch = UploadBatch(
                zone_id=zone_id,
                uploader_username=uploader_username,
                message=message,
                created_at=now
            )
            db.add(batch)
            db.flush()

            for stored in files:
                db.add(FileRecord(
                    zone_id=zone_id,
                    batch_id=batch.id,
                    original_name=stored.original_name,
                    content_type=stored.content_type,
                    size_bytes=stored.size_bytes,
                    uploaded_by=uploader_username,
                    uploaded_at=now,
                    storage_handle=stored.storage_handle
                ))
            db.commit()
        except IntegrityError:
            # Zone purged after the check; the foreign key refused the rows
            db.rollback()
            return None
        except Exception:
            db.rollback()
            raise

        db.refresh(batch)
        return batch

    def delete_without_zone(self, db: Session) -> int:
        """Bulk delete batches whose zone row no longer exists. Does not commit."""
        return (
            db.query(UploadBatch)
            .filter(~UploadBatch.zone_id.in_(select(Zone.id)))
            .delete(synchronize_session=False)
        )


class CRUDFileRecord(CRUDBase[FileRecord]):
    def get_in_zone(self, db: Session, *, zone_id: str, file_id: int) -> Optional[FileRecord]:
        return db.query(FileRecord).filter(
            FileRecord.id == file_id,
            FileRecord.zone_id == zone_id
        ).first()

    def get_handles_by_zone(self, db: Session, *, zone_id: str) -> List[str]:
        rows = db.query(FileRecord.storage_handle).filter(FileRecord.zone_id == zone_id).all()
        return [r[0] for r in rows]

    def get_handles_without_zone(self, db: Session) -> List[str]:
        rows = db.query(FileRecord.storage_handle).filter(~FileRecord.zone_id.in_(select(Zone.id))).all()
        return [r[0] for r in rows]

    def delete_without_zone(self, db: Session) -> int:
        """Bulk delete file records whose zone row no longer exists. Does not commit."""
        return (
            db.query(FileRecord)
            .filter(~FileRecord.zone_id.in_(select(Zone.id)))
            .delete(synchronize_session=False)
        )

    def get_referenced_handles(self, db: Session, *, handles: Iterable[str]) -> Set[str]:
        handles = list(handles)
        referenced = set()
        # Chunk the IN clause to stay under SQLite's bound-parameter limit
        for i in range(0, len(handles), 500):
            chunk = handles[i:i + 500]
            rows = db.query(FileRecord.storage_handle).filter(FileRecord.storage_handle.in_(chunk)).all()
            referenced.update(r[0] for r in rows)
        return referenced


batch = CRUDUploadBatch(UploadBatch)
file = CRUDFileRecord(FileRecord)
