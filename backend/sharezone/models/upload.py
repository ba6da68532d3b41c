from sqlalchemy import Column, Integer, String, Text, BigInteger, ForeignKey, DateTime
from sqlalchemy.orm import relationship
from sharezone.db.base_class import Base
from sharezone.utils.timeutils import utcnow

class UploadBatch(Base):
    __tablename__ = "upload_batches"

    id = Column(Integer, primary_key=True, index=True)
    zone_id = Column(String(32), ForeignKey("zones.id"), index=True, nullable=False)
    uploader_username = Column(String(255), nullable=False)
    message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    zone = relationship("Zone", back_populates="batches")
    files = relationship("FileRecord", back_populates="batch", order_by="FileRecord.id", passive_deletes=True)

class FileRecord(Base):
    __tablename__ = "file_records"

    id = Column(Integer, primary_key=True, index=True)
    zone_id = Column(String(32), ForeignKey("zones.id"), index=True, nullable=False)
    batch_id = Column(Integer, ForeignKey("upload_batches.id"), index=True, nullable=False)

    original_name = Column(String(255), nullable=False)
    content_type = Column(String(255), nullable=False)
    size_bytes = Column(BigInteger, nullable=False)
    uploaded_by = Column(String(255), nullable=False)
    uploaded_at = Column(DateTime, default=utcnow, nullable=False)

    # Opaque handle returned by the storage gateway
    storage_handle = Column(String(255), index=True, nullable=False)

    batch = relationship("UploadBatch", back_populates="files")
