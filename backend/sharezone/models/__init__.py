from .zone import Zone
from .upload import UploadBatch, FileRecord
from .user_session import UserSession
from .chat import ChatMessage
