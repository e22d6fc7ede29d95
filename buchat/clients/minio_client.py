"""
MinIO (S3-compatible) client for media storage.

The API never handles media bytes: clients upload straight to the bucket
with a pre-signed PUT URL and stream it back with a pre-signed GET URL.

Upload keys: uploads/{media_type}/{uuid}.{ext}
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

import boto3
from botocore.client import Config

from buchat.config import settings

logger = logging.getLogger(__name__)

MB = 1024 * 1024

MAX_SIZES = {
    "image": 10 * MB,
    "gif": 20 * MB,
    "video": 500 * MB,
    "audio": 50 * MB,
    "document": 20 * MB,
}

_s3 = None


class MediaTooLarge(Exception):
    def __init__(self, media_type: str, max_size: int) -> None:
        super().__init__(
            f"File too large. Maximum {media_type} size is {max_size // MB}MB"
        )
        self.media_type = media_type
        self.max_size = max_size


def init_minio() -> None:
    """Create the S3 client and ensure the media bucket exists."""
    global _s3
    scheme = "https" if settings.minio_use_ssl else "http"
    _s3 = boto3.client(
        "s3",
        endpoint_url=f"{scheme}://{settings.minio_endpoint}",
        aws_access_key_id=settings.minio_access_key,
        aws_secret_access_key=settings.minio_secret_key,
        config=Config(signature_version="s3v4"),
        region_name="us-east-1",
    )

    existing = [b["Name"] for b in _s3.list_buckets().get("Buckets", [])]
    if settings.minio_bucket not in existing:
        _s3.create_bucket(Bucket=settings.minio_bucket)
        logger.info("Created MinIO bucket '%s'", settings.minio_bucket)
    else:
        logger.info("MinIO bucket '%s' already exists", settings.minio_bucket)


def get_s3():
    if _s3 is None:
        raise RuntimeError("MinIO client not initialised — call init_minio() at startup")
    return _s3


def classify_media(content_type: str, declared: Optional[str] = None) -> str:
    """Map a MIME type onto one of the MAX_SIZES buckets."""
    if content_type == "image/gif":
        return "gif"
    for prefix in ("image", "video", "audio"):
        if content_type.startswith(f"{prefix}/"):
            return prefix
    return declared if declared in MAX_SIZES else "document"


def presign_upload(
    filename: str,
    content_type: str,
    size: int,
    declared_type: Optional[str] = None,
) -> dict:
    """
    Validate an upload request and return a pre-signed PUT URL.
    Raises MediaTooLarge when `size` exceeds the limit for the media type.
    """
    media_type = classify_media(content_type, declared_type)
    max_size = MAX_SIZES[media_type]
    if size > max_size:
        raise MediaTooLarge(media_type, max_size)

    ext = filename.rsplit(".", 1)[-1]
    file_id = str(uuid.uuid4())
    key = f"uploads/{media_type}/{file_id}.{ext}"

    url = get_s3().generate_presigned_url(
        "put_object",
        Params={
            "Bucket": settings.minio_bucket,
            "Key": key,
            "ContentType": content_type,
            "Metadata": {
                "originalFilename": filename,
                "uploadedAt": datetime.now(timezone.utc).isoformat(),
                "mediaType": media_type,
            },
        },
        ExpiresIn=settings.upload_url_ttl,
    )
    logger.debug("Presigned upload for %s (%s, %d bytes)", key, media_type, size)
    return {
        "upload_url": url,
        "s3_key": key,
        "file_id": file_id,
        "media_type": media_type,
        "expires_in": settings.upload_url_ttl,
    }


def get_presigned_url(media_key: str, expires_in: Optional[int] = None) -> str:
    """Generate a temporary pre-signed GET URL for a stored object."""
    return get_s3().generate_presigned_url(
        "get_object",
        Params={"Bucket": settings.minio_bucket, "Key": media_key},
        ExpiresIn=expires_in or settings.download_url_ttl,
    )
