"""
Media endpoints:
  POST /upload/presign — pre-signed PUT URL for a direct-to-bucket upload
  GET  /media/{key}    — pre-signed GET URL for a stored object
"""
import logging

from fastapi import APIRouter, HTTPException, status

from buchat.clients.minio_client import MediaTooLarge, get_presigned_url, presign_upload
from buchat.config import settings
from buchat.schemas import DownloadUrlResponse, PresignRequest, PresignResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/upload/presign", response_model=PresignResponse)
def presign(body: PresignRequest):
    try:
        signed = presign_upload(body.filename, body.content_type, body.size, body.media_type)
    except MediaTooLarge as exc:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=str(exc)
        ) from exc
    return PresignResponse(**signed)


@router.get("/media/{key:path}", response_model=DownloadUrlResponse)
def download_url(key: str):
    return DownloadUrlResponse(
        download_url=get_presigned_url(key),
        expires_in=settings.download_url_ttl,
    )
