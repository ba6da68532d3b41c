from typing import Generator, Optional

from fastapi import Header, Request
from sqlalchemy.orm import Session

from sharezone.core.security import OwnerCapability
from sharezone.services import BroadcastHub, ChatService, UploadCoordinator, ZoneRegistry


def get_db(request: Request) -> Generator[Session, None, None]:
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_registry(request: Request) -> ZoneRegistry:
    return request.app.state.registry


def get_uploads(request: Request) -> UploadCoordinator:
    return request.app.state.uploads


def get_chat(request: Request) -> ChatService:
    return request.app.state.chat


def get_hub(request: Request) -> BroadcastHub:
    return request.app.state.hub


def get_owner_capability(x_owner_token: Optional[str] = Header(None)) -> Optional[OwnerCapability]:
    return OwnerCapability.from_header(x_owner_token)
