from typing import Any, Optional, List
from pydantic import BaseModel
from datetime import datetime
from .upload import UploadBatch

# Request bodies. Fields are optional here so that a missing value
# surfaces as the service's MissingField error rather than a 422.
class ZoneCreate(BaseModel):
    zone_name: Optional[str] = None
    password: Optional[str] = None
    duration_hours: Any = None  # type and range checked by ZoneRegistry
    username: Optional[str] = None

class ZoneJoin(BaseModel):
    zone_name: Optional[str] = None
    password: Optional[str] = None
    username: Optional[str] = None

class LockUpdate(BaseModel):
    uploads_locked: Optional[bool] = None

class ExtendRequest(BaseModel):
    extra_hours: Any = None

class KickRequest(BaseModel):
    username: Optional[str] = None

# Shared properties
class ZoneSummary(BaseModel):
    id: str
    zone_name: str
    owner_username: str
    created_at: datetime
    expires_at: datetime
    uploads_locked: bool = False

    class Config:
        from_attributes = True

class SessionInfo(BaseModel):
    username: str
    joined_at: datetime

    class Config:
        from_attributes = True

class ZoneCreated(BaseModel):
    message: str
    zone: ZoneSummary
    # Shown once; the client keeps it to prove ownership
    owner_token: str

class ZoneJoined(BaseModel):
    message: str
    zone: ZoneSummary
    user: SessionInfo

class ZoneDetail(ZoneSummary):
    user_last_seen_at: Optional[datetime] = None # Used by clients to mark batches as new
    batches: List[UploadBatch] = []

class LockState(BaseModel):
    message: str
    uploads_locked: bool

class ExtendResult(BaseModel):
    message: str
    expires_at: datetime

class Presence(BaseModel):
    zone_id: str
    usernames: List[str]

class Msg(BaseModel):
    message: str
