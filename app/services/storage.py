"""
Supabase Storage service for mandat images.

Images are stored under mandats/{company_id}/ in the mandat images bucket
and served through their public URL.
"""

import logging
import uuid
from pathlib import Path
from typing import List, Optional, Tuple

from supabase import create_client, Client

from app.config import get_settings

logger = logging.getLogger(__name__)

# Allowed MIME types for images
ALLOWED_MIME_TYPES = [
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/gif",
]

# Maximum file size (10MB)
MAX_FILE_SIZE = 10 * 1024 * 1024

MIME_TO_EXT = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
}

EXT_TO_MIME = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
}


class StorageError(Exception):
    """Raised when an upload or delete against Supabase Storage fails."""
    pass


def get_supabase_client() -> Client:
    """Get Supabase client with service role key for storage operations."""
    settings = get_settings()
    return create_client(
        settings.supabase_url,
        settings.supabase_service_role_key or settings.supabase_key,
    )


def get_mime_type(filename: str) -> str:
    """Get MIME type from filename extension."""
    return EXT_TO_MIME.get(Path(filename).suffix.lower(), "application/octet-stream")


def validate_image(
    file_content: bytes,
    filename: str,
    mime_type: Optional[str] = None,
) -> Tuple[bool, str]:
    """
    Validate an uploaded image.

    Returns (is_valid, error_message).
    """
    if not file_content:
        return False, "Empty file"

    if len(file_content) > MAX_FILE_SIZE:
        return False, f"File too large. Maximum size is {MAX_FILE_SIZE // (1024 * 1024)}MB"

    actual_mime = mime_type or get_mime_type(filename)
    if actual_mime not in ALLOWED_MIME_TYPES:
        return False, f"Invalid file type. Allowed types: {', '.join(ALLOWED_MIME_TYPES)}"

    return True, ""


def build_storage_path(company_id: str, filename: str, mime_type: Optional[str] = None) -> str:
    """mandats/{company_id}/{uuid}{ext}"""
    actual_mime = mime_type or get_mime_type(filename)
    ext = MIME_TO_EXT.get(actual_mime, Path(filename).suffix.lower())
    return f"mandats/{company_id}/{uuid.uuid4()}{ext}"


def storage_path_from_url(url: str, bucket: Optional[str] = None) -> Optional[str]:
    """Recover the object path from a public URL of the bucket, None for foreign URLs."""
    bucket = bucket or get_settings().mandat_images_bucket
    marker = f"/{bucket}/"
    if not url or marker not in url:
        return None
    return url.split(marker, 1)[1].split("?", 1)[0] or None


async def upload_mandat_image(
    file_content: bytes,
    original_filename: str,
    company_id: str,
    mime_type: Optional[str] = None,
    client: Optional[Client] = None,
) -> Tuple[str, str]:
    """
    Upload a mandat image to Supabase Storage.

    Returns:
        Tuple of (storage_path, public_url)

    Raises:
        ValueError: the file is not an accepted image.
        StorageError: Supabase refused the upload.
    """
    is_valid, error = validate_image(file_content, original_filename, mime_type)
    if not is_valid:
        raise ValueError(error)

    bucket = get_settings().mandat_images_bucket
    client = client or get_supabase_client()
    actual_mime = mime_type or get_mime_type(original_filename)
    storage_path = build_storage_path(company_id, original_filename, actual_mime)

    try:
        result = client.storage.from_(bucket).upload(
            path=storage_path,
            file=file_content,
            file_options={
                "content-type": actual_mime,
                "cache-control": "3600",
            },
        )
    except Exception as e:
        logger.error("Upload of %s to bucket %s failed: %s", storage_path, bucket, e)
        raise StorageError(f"Upload failed: {e}") from e

    if getattr(result, "error", None):
        raise StorageError(f"Upload failed: {result.error}")

    public_url = client.storage.from_(bucket).get_public_url(storage_path)
    logger.info("Uploaded mandat image %s (%d bytes)", storage_path, len(file_content))
    return storage_path, public_url


async def delete_mandat_images(storage_paths: List[str], client: Optional[Client] = None) -> bool:
    """Delete several images at once. No-op for an empty list."""
    if not storage_paths:
        return True

    bucket = get_settings().mandat_images_bucket
    client = client or get_supabase_client()

    try:
        result = client.storage.from_(bucket).remove(storage_paths)
    except Exception as e:
        logger.error("Delete of %d images from bucket %s failed: %s", len(storage_paths), bucket, e)
        raise StorageError(f"Delete failed: {e}") from e

    if getattr(result, "error", None):
        raise StorageError(f"Delete failed: {result.error}")

    return True
