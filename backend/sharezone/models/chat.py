from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sharezone.db.base_class import Base
from sharezone.utils.timeutils import utcnow

class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    zone_id = Column(String(32), ForeignKey("zones.id"), index=True, nullable=False)
    username = Column(String(255), nullable=False)
    text = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, index=True, nullable=False)
