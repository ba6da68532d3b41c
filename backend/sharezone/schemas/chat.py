from pydantic import BaseModel
from datetime import datetime

class ChatMessage(BaseModel):
    id: int
    username: str
    text: str
    created_at: datetime

    class Config:
        from_attributes = True
