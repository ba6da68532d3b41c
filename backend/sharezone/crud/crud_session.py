from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sharezone.crud.base import CRUDBase
from sharezone.models.user_session import UserSession
from sharezone.utils.timeutils import utcnow


class CRUDUserSession(CRUDBase[UserSession]):
    def get_by_username(self, db: Session, *, zone_id: str, username: str) -> Optional[UserSession]:
        return db.query(UserSession).filter(
            UserSession.zone_id == zone_id,
            UserSession.username == username
        ).first()

    def create_or_touch(self, db: Session, *, zone_id: str, username: str) -> Optional[UserSession]:
        """
        Create the session on first join, otherwise stamp last_seen_at.
        Returns None when the zone row is gone.
        """
        existing = self.get_by_username(db, zone_id=zone_id, username=username)
        if existing:
            return self.touch(db, session=existing)

        now = utcnow()
        try:
            db_obj = UserSession(
                zone_id=zone_id,
                username=username,
                joined_at=now,
                last_seen_at=now,
                is_kicked=False
            )
            db.add(db_obj)
            db.commit()
            db.refresh(db_obj)
            return db_obj
        except IntegrityError:
            # Race condition: the same username joined from another request just now,
            # or the zone was purged and the foreign key refused the row
            db.rollback()
            existing = self.get_by_username(db, zone_id=zone_id, username=username)
            if existing is None:
                return None
            return self.touch(db, session=existing)

    def touch(self, db: Session, *, session: UserSession, at: Optional[datetime] = None) -> UserSession:
        session.last_seen_at = at or utcnow()
        db.add(session)
        db.commit()
        db.refresh(session)
        return session

    def mark_kicked(self, db: Session, *, session: UserSession) -> UserSession:
        session.is_kicked = True
        db.add(session)
        db.commit()
        db.refresh(session)
        return session

user_session = CRUDUserSession(UserSession)
