from typing import Any, List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, UploadFile, File, Form
from fastapi.responses import FileResponse, RedirectResponse
from sqlalchemy.orm import Session

from sharezone import schemas
from sharezone.api import deps
from sharezone.services import IncomingFile, UploadCoordinator

router = APIRouter()


@router.post("/{zone_id}/upload", response_model=schemas.UploadResult, status_code=201)
def upload_files(
        zone_id: str,
        db: Session = Depends(deps.get_db),
        uploads: UploadCoordinator = Depends(deps.get_uploads),
        username: Optional[str] = Form(None),
        message: Optional[str] = Form(None),
        files: Optional[List[UploadFile]] = File(None),
) -> Any:
    """
    Upload one batch of files. Either every file is stored or none is.
    """
    incoming = [
        IncomingFile(filename=f.filename, content_type=f.content_type, stream=f.file, size=f.size)
        for f in files or []
    ]
    batch = uploads.submit_upload(db, zone_id, uploader_username=username, message=message, files=incoming)

    batch_out = schemas.UploadBatch.model_validate(batch)
    return {"message": "Files uploaded successfully", "batch": batch_out, "files": batch_out.files}


@router.get("/{zone_id}/files/{file_id}/download")
def download_file(
        zone_id: str,
        file_id: int,
        db: Session = Depends(deps.get_db),
        uploads: UploadCoordinator = Depends(deps.get_uploads),
        mode: Optional[str] = None,
) -> Any:
    """
    Download a file, or show it inline with mode=inline.
    """
    descriptor = uploads.get_download_descriptor(db, zone_id, file_id, inline=(mode == "inline"))

    if descriptor.url:
        return RedirectResponse(descriptor.url)

    encoded_filename = quote(descriptor.filename)
    return FileResponse(
        descriptor.path,
        media_type=descriptor.content_type,
        headers={
            "Content-Disposition": f"{descriptor.disposition}; filename*=UTF-8''{encoded_filename}"
        }
    )
