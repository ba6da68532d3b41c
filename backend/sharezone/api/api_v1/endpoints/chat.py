from typing import Any, List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from sharezone import schemas
from sharezone.api import deps
from sharezone.services import ChatService

router = APIRouter()


@router.get("/{zone_id}/chat", response_model=List[schemas.ChatMessage])
def read_chat(
    zone_id: str,
    db: Session = Depends(deps.get_db),
    chat: ChatService = Depends(deps.get_chat),
) -> Any:
    """
    Chat history for the zone, oldest first.
    """
    return chat.history(db, zone_id)
