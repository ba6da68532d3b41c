from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from sharezone.crud.base import CRUDBase
from sharezone.crud.crud_chat import chat_message
from sharezone.crud.crud_session import user_session
from sharezone.crud.crud_upload import batch, file
from sharezone.models.zone import Zone
from sharezone.models.user_session import UserSession


class CRUDZone(CRUDBase[Zone]):
    def get_by_name(self, db: Session, *, zone_name: str) -> Optional[Zone]:
        """
        Names are not unique: the most recently created, non-deleted zone wins.
        """
        return (
            db.query(Zone)
            .filter(Zone.zone_name == zone_name, Zone.is_deleted.is_(False))
            .order_by(Zone.created_at.desc())
            .first()
        )

    def create_with_owner(
        self,
        db: Session,
        *,
        zone_name: str,
        password_hash: str,
        owner_username: str,
        owner_token_hash: str,
        created_at: datetime,
        expires_at: datetime,
    ) -> Zone:
        db_obj = Zone(
            zone_name=zone_name,
            password_hash=password_hash,
            owner_username=owner_username,
            owner_token_hash=owner_token_hash,
            created_at=created_at,
            expires_at=expires_at,
            uploads_locked=False,
            is_deleted=False
        )
        db.add(db_obj)
        db.flush()

        # The owner is the first participant
        db.add(UserSession(
            zone_id=db_obj.id,
            username=owner_username,
            joined_at=created_at,
            last_seen_at=created_at,
            is_kicked=False
        ))
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def compare_and_set_expiry(
        self, db: Session, *, zone_id: str, expected: datetime, new_expires_at: datetime
    ) -> bool:
        """
        Move expires_at only if it still holds the value the caller read.
        Returns False when another writer got there first.
        """
        stmt = (
            update(Zone)
            .where(Zone.id == zone_id, Zone.expires_at == expected, Zone.is_deleted.is_(False))
            .values(expires_at=new_expires_at)
            .execution_options(synchronize_session=False)
        )
        result = db.execute(stmt)
        db.commit()
        return result.rowcount == 1

    def set_uploads_locked(self, db: Session, *, zone: Zone, locked: bool) -> Zone:
        zone.uploads_locked = locked
        db.add(zone)
        db.commit()
        db.refresh(zone)
        return zone

    def mark_deleted(self, db: Session, *, zone: Zone) -> Zone:
        zone.is_deleted = True
        db.add(zone)
        db.commit()
        db.refresh(zone)
        return zone

    def get_reapable_ids(self, db: Session, *, now: datetime) -> List[str]:
        rows = db.query(Zone.id).filter(
            or_(Zone.expires_at < now, Zone.is_deleted.is_(True))
        ).all()
        return [r[0] for r in rows]

    def purge(self, db: Session, *, zone_id: str) -> Dict[str, int]:
        """
        Hard delete the zone and every row scoped to it in one transaction.
        Deleting rows that are already gone is a no-op.
        """
        try:
            counts = {
                "files": file.delete_by_zone(db, zone_id=zone_id),
                "batches": batch.delete_by_zone(db, zone_id=zone_id),
                "chat_messages": chat_message.delete_by_zone(db, zone_id=zone_id),
                "sessions": user_session.delete_by_zone(db, zone_id=zone_id),
                "zones": db.query(Zone).filter(Zone.id == zone_id).delete(synchronize_session=False),
            }
            db.commit()
        except Exception:
            db.rollback()
            raise
        return counts


zone = CRUDZone(Zone)
