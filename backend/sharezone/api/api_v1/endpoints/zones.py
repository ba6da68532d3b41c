from typing import Any, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from sharezone import schemas
from sharezone.api import deps
from sharezone.core.security import OwnerCapability
from sharezone.services import BroadcastHub, ZoneRegistry
from sharezone.services.registry import ZoneView, load_active_zone

router = APIRouter()


def _zone_detail(view: ZoneView) -> schemas.ZoneDetail:
    summary = schemas.ZoneSummary.model_validate(view.zone)
    return schemas.ZoneDetail(
        **summary.model_dump(),
        user_last_seen_at=view.user_last_seen_at,
        batches=[schemas.UploadBatch.model_validate(b) for b in view.batches],
    )


@router.post("", response_model=schemas.ZoneCreated, status_code=201)
def create_zone(
    *,
    db: Session = Depends(deps.get_db),
    registry: ZoneRegistry = Depends(deps.get_registry),
    zone_in: schemas.ZoneCreate,
) -> Any:
    """
    Create a zone. The owner token is returned only here.
    """
    zone, capability = registry.create_zone(
        db,
        zone_name=zone_in.zone_name,
        password=zone_in.password,
        duration_hours=zone_in.duration_hours,
        owner_username=zone_in.username,
    )
    return {
        "message": "Zone created successfully",
        "zone": schemas.ZoneSummary.model_validate(zone),
        "owner_token": capability.token,
    }


@router.post("/join", response_model=schemas.ZoneJoined)
def join_zone(
    *,
    db: Session = Depends(deps.get_db),
    registry: ZoneRegistry = Depends(deps.get_registry),
    join_in: schemas.ZoneJoin,
) -> Any:
    zone, session = registry.join_zone(
        db, zone_name=join_in.zone_name, password=join_in.password, username=join_in.username
    )
    return {
        "message": "Joined zone successfully",
        "zone": schemas.ZoneSummary.model_validate(zone),
        "user": schemas.SessionInfo.model_validate(session),
    }


@router.get("/{zone_id}", response_model=schemas.ZoneDetail)
def read_zone(
    zone_id: str,
    db: Session = Depends(deps.get_db),
    registry: ZoneRegistry = Depends(deps.get_registry),
    username: Optional[str] = None,
) -> Any:
    """
    Zone info with every upload batch, plus the caller's previous visit time.
    """
    return _zone_detail(registry.get_zone(db, zone_id, username=username))


@router.get("/{zone_id}/presence", response_model=schemas.Presence)
def read_presence(
    zone_id: str,
    db: Session = Depends(deps.get_db),
    hub: BroadcastHub = Depends(deps.get_hub),
) -> Any:
    zone = load_active_zone(db, zone_id)
    return {"zone_id": zone.id, "usernames": hub.presence(zone.id)}


@router.patch("/{zone_id}/lock", response_model=schemas.LockState)
def set_uploads_locked(
    *,
    zone_id: str,
    db: Session = Depends(deps.get_db),
    registry: ZoneRegistry = Depends(deps.get_registry),
    capability: Optional[OwnerCapability] = Depends(deps.get_owner_capability),
    lock_in: schemas.LockUpdate,
) -> Any:
    locked = registry.set_uploads_locked(db, zone_id, capability=capability, locked=lock_in.uploads_locked)
    return {"message": "Uploads locked" if locked else "Uploads unlocked", "uploads_locked": locked}


@router.patch("/{zone_id}/extend", response_model=schemas.ExtendResult)
def extend_zone(
    *,
    zone_id: str,
    db: Session = Depends(deps.get_db),
    registry: ZoneRegistry = Depends(deps.get_registry),
    capability: Optional[OwnerCapability] = Depends(deps.get_owner_capability),
    extend_in: schemas.ExtendRequest,
) -> Any:
    expires_at = registry.extend_zone(db, zone_id, capability=capability, extra_hours=extend_in.extra_hours)
    return {"message": "Zone expiry extended", "expires_at": expires_at}


@router.post("/{zone_id}/kick-user", response_model=schemas.Msg)
def kick_user(
    *,
    zone_id: str,
    db: Session = Depends(deps.get_db),
    registry: ZoneRegistry = Depends(deps.get_registry),
    capability: Optional[OwnerCapability] = Depends(deps.get_owner_capability),
    kick_in: schemas.KickRequest,
) -> Any:
    registry.kick_user(db, zone_id, capability=capability, target_username=kick_in.username)
    return {"message": f'User "{kick_in.username.strip()}" has been removed from this zone.'}


@router.delete("/{zone_id}", response_model=schemas.Msg)
def delete_zone(
    zone_id: str,
    db: Session = Depends(deps.get_db),
    registry: ZoneRegistry = Depends(deps.get_registry),
    capability: Optional[OwnerCapability] = Depends(deps.get_owner_capability),
) -> Any:
    """
    Delete the zone with all of its files, sessions and messages.
    """
    registry.delete_zone(db, zone_id, capability=capability)
    return {"message": "Zone deleted successfully"}
