from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sharezone.db.base_class import Base
from sharezone.utils.timeutils import utcnow

class UserSession(Base):
    """Zone-scoped participation record. Not a login session."""

    __tablename__ = "user_sessions"

    id = Column(Integer, primary_key=True, index=True)
    zone_id = Column(String(32), ForeignKey("zones.id"), index=True, nullable=False)
    username = Column(String(255), nullable=False)
    joined_at = Column(DateTime, default=utcnow, nullable=False)
    last_seen_at = Column(DateTime, default=utcnow, nullable=False)
    is_kicked = Column(Boolean, default=False, nullable=False)

    __table_args__ = (
        UniqueConstraint("zone_id", "username", name="uq_user_session_zone_username"),
    )
