import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional, Set

from sqlalchemy.orm import Session

from sharezone import crud
from sharezone.services.hub import BroadcastHub
from sharezone.storage.gateway import StorageGateway
from sharezone.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


class ExpiryReaper:
    """
    Purges zones together with everything that depends on them.

    `cleanup_zone` is shared by the owner's explicit delete and by the
    periodic `sweep`. It is idempotent: blobs and rows that are already gone
    are skipped, so a retry after a crash, or a race between the two callers,
    finishes the job without errors.
    """

    def __init__(
        self,
        *,
        storage: StorageGateway,
        hub: BroadcastHub,
        session_factory: Callable[[], Session],
        interval_seconds: int = 300,
        orphan_grace: timedelta = timedelta(minutes=60),
    ):
        self.storage = storage
        self.hub = hub
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.orphan_grace = orphan_grace

        self._in_progress: Set[str] = set()
        self._in_progress_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def cleanup_zone(self, db: Session, zone_id: str, *, reason: str = "deleted") -> bool:
        """
        Delete blobs first, then all zone-scoped rows, then the zone itself.
        Returns False if another cleanup of the same zone is already running.
        """
        with self._in_progress_lock:
            if zone_id in self._in_progress:
                logger.info("Cleanup of zone %s already in progress, skipping", zone_id)
                return False
            self._in_progress.add(zone_id)

        try:
            logger.info("Cleaning up zone %s (%s)", zone_id, reason)
            handles = crud.file.get_handles_by_zone(db, zone_id=zone_id)
            for handle in handles:
                self._delete_blob(handle, zone_id=zone_id)

            counts = crud.zone.purge(db, zone_id=zone_id)
        finally:
            with self._in_progress_lock:
                self._in_progress.discard(zone_id)

        self.hub.close_zone(zone_id, reason)
        logger.info("Cleanup complete for zone %s: %s", zone_id, counts)
        return True

    def sweep(self, now: Optional[datetime] = None) -> int:
        """
        Purge every zone that is past expiry or soft-deleted. A failure on one
        zone is logged and does not stop the others. Returns the number of
        zones purged.
        """
        now = now or utcnow()
        db = self.session_factory()
        try:
            zone_ids = crud.zone.get_reapable_ids(db, now=now)
            if not zone_ids:
                logger.debug("No expired/soft-deleted zones to clean up.")
            else:
                logger.info("Found %d zone(s) to clean up.", len(zone_ids))

            purged = 0
            for zone_id in zone_ids:
                try:
                    if self.cleanup_zone(db, zone_id, reason="expired"):
                        purged += 1
                except Exception:
                    db.rollback()
                    logger.exception("Error cleaning zone %s", zone_id)

            try:
                self.sweep_orphan_records(db)
            except Exception:
                db.rollback()
                logger.exception("Error sweeping records of vanished zones")

            try:
                self.sweep_orphans(db, now=now)
            except Exception:
                db.rollback()
                logger.exception("Error sweeping orphan blobs")

            return purged
        finally:
            db.close()

    def sweep_orphan_records(self, db: Session) -> int:
        """
        Remove file and batch rows left behind by a zone that no longer
        exists, blobs first. Returns the number of file rows removed.
        """
        handles = crud.file.get_handles_without_zone(db)
        for handle in handles:
            self._delete_blob(handle)

        try:
            files = crud.file.delete_without_zone(db)
            batches = crud.batch.delete_without_zone(db)
            db.commit()
        except Exception:
            db.rollback()
            raise

        if files or batches:
            logger.warning("Removed %d file record(s) and %d batch(es) of vanished zones", files, batches)
        return files

    def sweep_orphans(self, db: Session, now: Optional[datetime] = None) -> int:
        """
        Remove blobs that no file record references, once they are older than
        the grace period. Covers uploads aborted before their compensation ran.
        """
        cutoff = (now or utcnow()) - self.orphan_grace
        candidates = [handle for handle, modified in self.storage.iter_blobs() if modified < cutoff]
        if not candidates:
            return 0

        referenced = crud.file.get_referenced_handles(db, handles=candidates)
        removed = 0
        for handle in candidates:
            if handle in referenced:
                continue
            if self._delete_blob(handle):
                removed += 1

        if removed:
            logger.info("Removed %d orphan blob(s)", removed)
        return removed

    def _delete_blob(self, handle: str, zone_id: Optional[str] = None) -> bool:
        # Best effort: an orphaned blob is a lesser failure than leftover zone metadata
        try:
            deleted = self.storage.delete(handle)
        except Exception:
            logger.warning("Failed to delete blob %s (zone %s)", handle, zone_id, exc_info=True)
            return False

        if deleted:
            logger.debug("Deleted blob %s", handle)
        else:
            logger.debug("Blob %s already gone", handle)
        return deleted

    # --- scheduling ---

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="zone-reaper", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 10.0) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        logger.info("Expiry reaper started, sweeping every %ss", self.interval_seconds)
        while not self._stop.wait(self.interval_seconds):
            try:
                self.sweep()
            except Exception:
                logger.exception("Error in expired zones sweep")
        logger.info("Expiry reaper stopped")
