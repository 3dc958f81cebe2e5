import logging
import os
import re
import uuid
from typing import Optional

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import HTTPException, UploadFile

logger = logging.getLogger("socio.storage")

DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024

# bucket -> allowed content type prefixes
BUCKETS = {
    "event-images": ("image/",),
    "event-banners": ("image/",),
    "event-pdfs": ("application/pdf",),
    "fest-images": ("image/",),
    "avatars": ("image/",),
}


def storage_backend() -> str:
    return os.getenv("STORAGE_BACKEND", "local").lower()


def upload_dir() -> str:
    return os.getenv("UPLOAD_DIR", os.path.join(os.getcwd(), "uploads"))


def max_upload_bytes() -> int:
    return int(os.getenv("MAX_UPLOAD_BYTES", str(DEFAULT_MAX_UPLOAD_BYTES)))


def _worker_url() -> str:
    return os.getenv("CLOUDFLARE_WORKER_URL", "").rstrip("/")


def _r2_client():
    # Configure boto3 client for Cloudflare R2
    return boto3.client(
        "s3",
        endpoint_url=os.getenv("CLOUDFLARE_R2_ENDPOINT"),
        aws_access_key_id=os.getenv("CF_ACCESS_KEY_ID"),
        aws_secret_access_key=os.getenv("CF_SECRET_ACCESS_KEY"),
        config=Config(signature_version="s3v4"),
        region_name="auto",
    )


def _safe_filename(filename: Optional[str]) -> str:
    name = os.path.basename(filename or "upload")
    name = re.sub(r"[^\w.\-]", "_", name)
    return name or "upload"


def validate_upload(file: UploadFile, bucket: str) -> bytes:
    """Read an upload and check it against the bucket's rules."""
    if bucket not in BUCKETS:
        raise HTTPException(status_code=400, detail=f"Unknown bucket '{bucket}'")
    content_type = (file.content_type or "").lower()
    if not content_type.startswith(BUCKETS[bucket]):
        logger.error(f"Rejected upload {file.filename} with content type '{content_type}' for bucket {bucket}")
        raise HTTPException(status_code=400, detail=f"File type '{content_type or 'unknown'}' is not allowed for {bucket}")
    data = file.file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    if len(data) > max_upload_bytes():
        raise HTTPException(status_code=400, detail=f"File exceeds the {max_upload_bytes()} byte limit")
    return data


def public_url(bucket: str, object_path: str) -> str:
    if storage_backend() == "r2":
        return f"{_worker_url()}/{bucket}/{object_path}"
    base = os.getenv("PUBLIC_BASE_URL", "").rstrip("/")
    return f"{base}/uploads/{bucket}/{object_path}"


async def upload_file(file: UploadFile, bucket: str, owner_id: str) -> str:
    """Store an upload under ``<bucket>/<owner_id>/`` and return its public URL."""
    data = validate_upload(file, bucket)
    object_path = f"{owner_id}/{uuid.uuid4().hex}-{_safe_filename(file.filename)}"
    try:
        if storage_backend() == "r2":
            bucket_name = os.getenv("CLOUDFLARE_R2_BUCKET")
            logger.info(f"Uploading file to R2: {bucket}/{object_path}")
            _r2_client().put_object(
                Bucket=bucket_name,
                Key=f"{bucket}/{object_path}",
                Body=data,
                ContentType=file.content_type,
            )
        else:
            target = os.path.join(upload_dir(), bucket, owner_id)
            os.makedirs(target, exist_ok=True)
            with open(os.path.join(upload_dir(), bucket, object_path), "wb") as f:
                f.write(data)
    except (BotoCoreError, ClientError, OSError) as e:
        logger.error(f"Error uploading file to {bucket}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to store uploaded file")
    file_url = public_url(bucket, object_path)
    logger.info(f"File uploaded successfully: {file_url}")
    return file_url


def get_path_from_storage_url(url: Optional[str], bucket: str) -> Optional[str]:
    """Return the object path inside ``bucket`` for a URL produced by upload_file."""
    if not url:
        return None
    marker = f"/{bucket}/"
    idx = url.find(marker)
    if idx == -1:
        return None
    path = url[idx + len(marker):].split("?", 1)[0]
    if not path or ".." in path.split("/"):
        return None
    return path


def delete_file(object_path: Optional[str], bucket: str) -> bool:
    """Remove a stored object; a missing object is not an error."""
    if not object_path:
        return False
    try:
        if storage_backend() == "r2":
            _r2_client().delete_object(Bucket=os.getenv("CLOUDFLARE_R2_BUCKET"), Key=f"{bucket}/{object_path}")
            logger.info(f"Deleted R2 object {bucket}/{object_path}")
            return True
        full_path = os.path.join(upload_dir(), bucket, object_path)
        if os.path.exists(full_path):
            os.remove(full_path)
            logger.info(f"Deleted local file {full_path}")
            return True
        return False
    except (BotoCoreError, ClientError, OSError) as e:
        logger.error(f"Error deleting {bucket}/{object_path}: {str(e)}")
        return False


def delete_file_by_url(url: Optional[str], bucket: str) -> bool:
    return delete_file(get_path_from_storage_url(url, bucket), bucket)
