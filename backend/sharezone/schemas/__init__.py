from .upload import FileRecord, UploadBatch, UploadResult
from .zone import (
    ZoneCreate, ZoneJoin, LockUpdate, ExtendRequest, KickRequest,
    ZoneSummary, SessionInfo, ZoneCreated, ZoneJoined, ZoneDetail,
    LockState, ExtendResult, Presence, Msg,
)
from .chat import ChatMessage
