from typing import Optional, List
from pydantic import BaseModel
from datetime import datetime

# Properties to return to client
class FileRecord(BaseModel):
    id: int
    original_name: str
    content_type: str
    size_bytes: int
    uploaded_by: str
    uploaded_at: datetime

    class Config:
        from_attributes = True

class UploadBatch(BaseModel):
    id: int
    zone_id: str
    uploader_username: str
    message: Optional[str] = None
    created_at: datetime
    files: List[FileRecord] = []

    class Config:
        from_attributes = True

# Response for a submitted upload
class UploadResult(BaseModel):
    message: str
    batch: UploadBatch
    files: List[FileRecord]
