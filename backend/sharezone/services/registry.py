import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from sharezone import crud
from sharezone.core.exceptions import (
    CannotKickOwner,
    Expired,
    InternalError,
    InvalidDuration,
    LifetimeLimitExceeded,
    MissingField,
    NotOwner,
    SessionNotFound,
    Unauthorized,
    UserKicked,
    ZoneNotFound,
)
from sharezone.core.security import OwnerCapability, get_password_hash, verify_password
from sharezone.models import UploadBatch, UserSession, Zone
from sharezone.services.hub import BroadcastHub
from sharezone.services.reaper import ExpiryReaper
from sharezone.utils.timeutils import HOUR, hours, utcnow

logger = logging.getLogger(__name__)


def load_zone(db: Session, zone_id: str) -> Zone:
    """Zone that exists and is not soft-deleted, expired or not."""
    zone = crud.zone.get(db, id=zone_id)
    if not zone or zone.is_deleted:
        raise ZoneNotFound()
    return zone


def load_active_zone(db: Session, zone_id: str) -> Zone:
    zone = load_zone(db, zone_id)
    if zone.is_expired():
        raise Expired()
    return zone


def require_fields(**fields) -> None:
    missing = [name for name, value in fields.items() if value is None or (isinstance(value, str) and not value.strip())]
    if missing:
        raise MissingField(f"{', '.join(missing)} {'is' if len(missing) == 1 else 'are'} required", fields=missing)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


@dataclass
class ZoneView:
    zone: Zone
    user_last_seen_at: Optional[datetime] = None
    batches: List[UploadBatch] = field(default_factory=list)


class ZoneRegistry:
    """
    Owns the zone lifecycle: creation, joining, owner-only state changes and
    explicit deletion. Owner actions are authorized by an `OwnerCapability`,
    never by username.
    """

    def __init__(
        self,
        *,
        hub: BroadcastHub,
        reaper: ExpiryReaper,
        min_hours: int = 1,
        max_hours: int = 5,
        max_total_hours: int = 10,
        extend_retries: int = 5,
    ):
        self.hub = hub
        self.reaper = reaper
        self.min_hours = min_hours
        self.max_hours = max_hours
        self.max_total_hours = max_total_hours
        self.extend_retries = extend_retries

    @property
    def max_total_lifetime(self) -> timedelta:
        return hours(self.max_total_hours)

    def _check_hours(self, value, name: str) -> None:
        if not _is_number(value) or value < self.min_hours or value > self.max_hours:
            raise InvalidDuration(
                f"{name} must be between {self.min_hours} and {self.max_hours} hours",
                min_hours=self.min_hours,
                max_hours=self.max_hours,
            )

    @staticmethod
    def _authorize_owner(zone: Zone, capability: Optional[OwnerCapability]) -> None:
        if capability is None or not capability.grants(zone.owner_token_hash):
            raise NotOwner()

    # --- participants ---

    def create_zone(
        self, db: Session, *, zone_name: str, password: str, duration_hours: float, owner_username: str
    ) -> Tuple[Zone, OwnerCapability]:
        require_fields(zone_name=zone_name, password=password, duration_hours=duration_hours, username=owner_username)
        self._check_hours(duration_hours, "Duration")

        capability = OwnerCapability.issue()
        created_at = utcnow()
        zone = crud.zone.create_with_owner(
            db,
            zone_name=zone_name.strip(),
            password_hash=get_password_hash(password),
            owner_username=owner_username.strip(),
            owner_token_hash=capability.digest,
            created_at=created_at,
            expires_at=created_at + hours(duration_hours),
        )
        logger.info("Zone %s (%r) created by %s for %sh", zone.id, zone.zone_name, zone.owner_username, duration_hours)
        return zone, capability

    def join_zone(self, db: Session, *, zone_name: str, password: str, username: str) -> Tuple[Zone, UserSession]:
        require_fields(zone_name=zone_name, password=password, username=username)
        username = username.strip()

        zone = crud.zone.get_by_name(db, zone_name=zone_name.strip())
        if not zone:
            raise ZoneNotFound()
        if zone.is_expired():
            raise Expired()
        if not verify_password(password, zone.password_hash):
            raise Unauthorized()

        session = crud.user_session.get_by_username(db, zone_id=zone.id, username=username)
        if session and session.is_kicked:
            raise UserKicked()

        session = crud.user_session.create_or_touch(db, zone_id=zone.id, username=username)
        if session is None:
            raise ZoneNotFound()
        # A kick may have landed between the check and the stamp
        if session.is_kicked:
            raise UserKicked()
        return zone, session

    def get_zone(self, db: Session, zone_id: str, *, username: Optional[str] = None) -> ZoneView:
        zone = load_active_zone(db, zone_id)

        user_last_seen_at = None
        if username:
            session = crud.user_session.get_by_username(db, zone_id=zone.id, username=username.strip())
            if session and session.is_kicked:
                raise UserKicked()
            if session:
                # Read-then-stamp; concurrent reads may both see the old value
                user_last_seen_at = session.last_seen_at or session.joined_at
                crud.user_session.touch(db, session=session)

        batches = crud.batch.get_by_zone_with_files(db, zone_id=zone.id)
        return ZoneView(zone=zone, user_last_seen_at=user_last_seen_at, batches=batches)

    def check_participant(self, db: Session, zone_id: str, username: str) -> Zone:
        """Admission check for real-time channels. No side effects."""
        require_fields(username=username)
        zone = load_active_zone(db, zone_id)
        session = crud.user_session.get_by_username(db, zone_id=zone.id, username=username.strip())
        if session and session.is_kicked:
            raise UserKicked()
        return zone

    # --- owner actions ---

    def set_uploads_locked(
        self, db: Session, zone_id: str, *, capability: Optional[OwnerCapability], locked: bool
    ) -> bool:
        if not isinstance(locked, bool):
            raise MissingField("uploads_locked (boolean) is required", fields=["uploads_locked"])

        zone = load_zone(db, zone_id)
        self._authorize_owner(zone, capability)
        if zone.is_expired():
            raise Expired("Zone has already expired")

        zone = crud.zone.set_uploads_locked(db, zone=zone, locked=locked)
        logger.info("Zone %s uploads %s", zone.id, "locked" if zone.uploads_locked else "unlocked")

        self.hub.broadcast(zone.id, "zone_lock_state", {
            "zone_id": zone.id,
            "uploads_locked": zone.uploads_locked,
            "updated_by": zone.owner_username,
        })
        return zone.uploads_locked

    def extend_zone(
        self, db: Session, zone_id: str, *, capability: Optional[OwnerCapability], extra_hours: float
    ) -> datetime:
        self._check_hours(extra_hours, "extra_hours")
        extra = hours(extra_hours)

        for attempt in range(self.extend_retries):
            # Always decide against the persisted expiry, never a cached one
            db.expire_all()
            zone = load_zone(db, zone_id)
            self._authorize_owner(zone, capability)
            if zone.is_expired():
                raise Expired("Zone has already expired")

            current_expiry = zone.expires_at
            lifetime = current_expiry - zone.created_at
            if lifetime + extra > self.max_total_lifetime:
                remaining = (self.max_total_lifetime - lifetime) / HOUR
                remaining = max(math.floor(remaining * 10) / 10, 0.0)
                raise LifetimeLimitExceeded(remaining, self.max_total_hours)

            new_expires_at = current_expiry + extra
            if crud.zone.compare_and_set_expiry(
                db, zone_id=zone_id, expected=current_expiry, new_expires_at=new_expires_at
            ):
                logger.info("Zone %s extended by %sh to %s", zone_id, extra_hours, new_expires_at.isoformat())
                self.hub.broadcast(zone_id, "zone_extended", {
                    "zone_id": zone_id,
                    "expires_at": new_expires_at.isoformat(),
                    "extra_hours": extra_hours,
                    "extended_by": zone.owner_username,
                })
                return new_expires_at

            logger.info("Concurrent expiry update on zone %s, retrying (attempt %d)", zone_id, attempt + 1)

        raise InternalError("Could not extend zone due to concurrent updates")

    def kick_user(
        self, db: Session, zone_id: str, *, capability: Optional[OwnerCapability], target_username: str
    ) -> None:
        require_fields(username=target_username)
        target_username = target_username.strip()

        zone = load_zone(db, zone_id)
        self._authorize_owner(zone, capability)
        if target_username == zone.owner_username:
            raise CannotKickOwner()

        session = crud.user_session.get_by_username(db, zone_id=zone.id, username=target_username)
        if not session:
            raise SessionNotFound()

        crud.user_session.mark_kicked(db, session=session)
        logger.info("User %s kicked from zone %s", target_username, zone.id)
        self.hub.kick(zone.id, target_username)

    def delete_zone(self, db: Session, zone_id: str, *, capability: Optional[OwnerCapability]) -> None:
        zone = crud.zone.get(db, id=zone_id)
        if not zone:
            raise ZoneNotFound()
        self._authorize_owner(zone, capability)

        # Stop serving it right away; the reaper finishes the job if cleanup fails
        crud.zone.mark_deleted(db, zone=zone)
        self.reaper.cleanup_zone(db, zone_id, reason="deleted")
        logger.info("Zone %s deleted by owner", zone_id)
