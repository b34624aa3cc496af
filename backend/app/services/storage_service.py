"""Supabase Storage service for case files.

Storage path structure (bucket from ``storage_bucket`` setting):
- {case_id}/uploads/{filename}  - uploaded disclosure documents
- {case_id}/exports/{filename}  - generated disclosure reports

Storage calls are external I/O and are never made while a case lock is held.
"""

import uuid

import structlog
from supabase import Client

from app.core.config import get_settings
from app.services.exceptions import ExternalServiceError
from app.services.supabase.client import get_supabase_client

logger = structlog.get_logger(__name__)

UPLOADS_FOLDER = "uploads"
EXPORTS_FOLDER = "exports"
VALID_SUBFOLDERS = {UPLOADS_FOLDER, EXPORTS_FOLDER}

DEFAULT_SIGNED_URL_EXPIRES = 3600


class StorageError(ExternalServiceError):
    """Storage operation failed."""

    code = "STORAGE_ERROR"

    def __init__(self, message: str, *, is_retryable: bool = True):
        super().__init__("Storage", message, is_retryable=is_retryable)


def unique_filename(filename: str) -> str:
    """Append a short random suffix before the extension."""
    if "." in filename:
        name, ext = filename.rsplit(".", 1)
        return f"{name}_{uuid.uuid4().hex[:8]}.{ext}"
    return f"{filename}_{uuid.uuid4().hex[:8]}"


class StorageService:
    """Service for Supabase Storage operations.

    Uses the service client; callers have already checked the user's case
    roles.
    """

    def __init__(self, client: Client | None = None, bucket: str | None = None):
        self.client = client or get_supabase_client()
        self.bucket = bucket or get_settings().storage_bucket

    def _bucket(self):
        if self.client is None:
            raise StorageError("Storage client not configured", is_retryable=False)
        return self.client.storage.from_(self.bucket)

    def upload_file(
        self,
        case_id: int,
        subfolder: str,
        file_content: bytes,
        filename: str,
        content_type: str = "application/pdf",
    ) -> str:
        """Upload a file and return its storage path.

        Raises:
            StorageError: If the subfolder is invalid or the upload fails.
        """
        if subfolder not in VALID_SUBFOLDERS:
            raise StorageError(
                f"Invalid subfolder: {subfolder}. Must be one of: {sorted(VALID_SUBFOLDERS)}",
                is_retryable=False,
            )

        bucket = self._bucket()
        storage_path = f"{case_id}/{subfolder}/{unique_filename(filename)}"

        logger.info(
            "storage_upload_starting",
            case_id=case_id,
            storage_path=storage_path,
            file_size=len(file_content),
        )

        try:
            bucket.upload(
                path=storage_path,
                file=file_content,
                file_options={"content-type": content_type},
            )
        except Exception as e:
            logger.error(
                "storage_upload_failed",
                case_id=case_id,
                storage_path=storage_path,
                error=str(e),
            )
            raise StorageError(f"Failed to upload file: {e!s}") from e

        logger.info("storage_upload_complete", case_id=case_id, storage_path=storage_path)
        return storage_path

    def delete_file(self, storage_path: str) -> None:
        bucket = self._bucket()
        try:
            bucket.remove([storage_path])
        except Exception as e:
            logger.error("storage_delete_failed", storage_path=storage_path, error=str(e))
            raise StorageError(f"Failed to delete file: {e!s}") from e
        logger.info("storage_delete_complete", storage_path=storage_path)

    def get_signed_url(
        self,
        storage_path: str,
        expires_in: int = DEFAULT_SIGNED_URL_EXPIRES,
    ) -> str:
        """Generate a signed download URL.

        Raises:
            StorageError: If URL generation fails.
        """
        bucket = self._bucket()
        try:
            response = bucket.create_signed_url(path=storage_path, expires_in=expires_in)
        except Exception as e:
            logger.error("signed_url_generation_failed", storage_path=storage_path, error=str(e))
            raise StorageError(f"Failed to generate signed URL: {e!s}") from e
        return response.get("signedURL") or response.get("signedUrl") or ""
