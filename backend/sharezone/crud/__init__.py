from .crud_zone import zone
from .crud_upload import batch, file, StoredFile
from .crud_session import user_session
from .crud_chat import chat_message
