from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sharezone.crud.base import CRUDBase
from sharezone.models.chat import ChatMessage
from sharezone.utils.timeutils import utcnow


class CRUDChatMessage(CRUDBase[ChatMessage]):
    def create(self, db: Session, *, zone_id: str, username: str, text: str) -> Optional[ChatMessage]:
        db_obj = ChatMessage(
            zone_id=zone_id,
            username=username,
            text=text,
            created_at=utcnow()
        )
        db.add(db_obj)
        try:
            db.commit()
        except IntegrityError:
            # Zone purged since it was loaded
            db.rollback()
            return None
        db.refresh(db_obj)
        return db_obj

    def get_recent(self, db: Session, *, zone_id: str, limit: int = 200) -> List[ChatMessage]:
        """
        Latest `limit` messages of the zone, oldest first.
        """
        newest = (
            db.query(ChatMessage)
            .filter(ChatMessage.zone_id == zone_id)
            .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
            .limit(limit)
            .all()
        )
        return list(reversed(newest))


chat_message = CRUDChatMessage(ChatMessage)
