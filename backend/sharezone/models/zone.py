import uuid

from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from sharezone.db.base_class import Base
from sharezone.utils.timeutils import utcnow


def new_zone_id() -> str:
    return uuid.uuid4().hex


class Zone(Base):
    __tablename__ = "zones"

    # Random hex id: zone detail is readable without the password
    id = Column(String(32), primary_key=True, default=new_zone_id)
    zone_name = Column(String(255), index=True, nullable=False) # Not unique, see crud.zone.get_by_name
    password_hash = Column(String(255), nullable=False)

    owner_username = Column(String(255), nullable=False)
    owner_token_hash = Column(String(64), nullable=False) # sha256 of the owner capability token

    created_at = Column(DateTime, default=utcnow, index=True, nullable=False)
    expires_at = Column(DateTime, index=True, nullable=False)

    uploads_locked = Column(Boolean, default=False, nullable=False)
    is_deleted = Column(Boolean, default=False, index=True, nullable=False)

    batches = relationship(
        "UploadBatch",
        back_populates="zone",
        order_by="UploadBatch.created_at",
        passive_deletes=True,
    )

    def is_expired(self, now=None) -> bool:
        return self.expires_at < (now or utcnow())

    @property
    def lifetime(self):
        return self.expires_at - self.created_at
