import logging
from typing import List

from sqlalchemy.orm import Session

from sharezone import crud, schemas
from sharezone.core.exceptions import MissingField, UserKicked, ValidationFailed, ZoneNotFound
from sharezone.models import ChatMessage
from sharezone.services.hub import BroadcastHub
from sharezone.services.registry import load_active_zone, require_fields

logger = logging.getLogger(__name__)


class ChatService:
    def __init__(self, *, hub: BroadcastHub, history_limit: int = 200, max_length: int = 2000):
        self.hub = hub
        self.history_limit = history_limit
        self.max_length = max_length

    def post_message(self, db: Session, zone_id: str, *, username: str, text: str) -> ChatMessage:
        require_fields(username=username)
        text = (text or "").strip()
        if not text:
            raise MissingField("text is required", fields=["text"])
        if len(text) > self.max_length:
            raise ValidationFailed(f"Messages are limited to {self.max_length} characters")

        zone = load_active_zone(db, zone_id)
        session = crud.user_session.get_by_username(db, zone_id=zone.id, username=username.strip())
        if session and session.is_kicked:
            raise UserKicked()

        zone_id = zone.id
        message = crud.chat_message.create(db, zone_id=zone_id, username=username.strip(), text=text)
        if message is None:
            raise ZoneNotFound()
        logger.debug("Zone %s: chat message %s from %s", zone_id, message.id, message.username)
        self.hub.broadcast(
            zone_id,
            "chat_message",
            schemas.ChatMessage.model_validate(message).model_dump(mode="json"),
        )
        return message

    def history(self, db: Session, zone_id: str) -> List[ChatMessage]:
        zone = load_active_zone(db, zone_id)
        return crud.chat_message.get_recent(db, zone_id=zone.id, limit=self.history_limit)
