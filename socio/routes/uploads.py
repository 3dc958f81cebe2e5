import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from socio import schemas, storage
from socio.auth_utils import authenticate_user

logger = logging.getLogger("socio.uploads")

router = APIRouter(prefix="/api", tags=["Uploads"])


# Endpoint: POST /api/upload
# Description: Stores a single file in one of the known buckets and returns its public URL.
@router.post("/upload", response_model=schemas.UploadResponse, status_code=201)
async def upload(
    file: UploadFile = File(None),
    bucket: str = Form(None),
    auth_user: schemas.AuthUser = Depends(authenticate_user),
):
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file provided")
    if not bucket:
        raise HTTPException(status_code=400, detail="bucket is required")
    logger.debug(f"User {auth_user.id} uploading {file.filename} to {bucket}")
    url = await storage.upload_file(file, bucket, auth_user.id)
    return {"message": "File uploaded successfully", "url": url, "bucket": bucket}
