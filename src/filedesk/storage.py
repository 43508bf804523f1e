import io
import logging
import uuid
from datetime import timedelta

from minio import Minio
from minio.error import S3Error
from urllib3.exceptions import HTTPError as TransportError

from filedesk.config import get_settings
from filedesk.errors import StorageWriteError

logger = logging.getLogger(__name__)

# S3 errors, plus what the client lets through when MinIO is unreachable
_STORE_ERRORS = (S3Error, TransportError, OSError)


def get_minio_client() -> Minio:
    """Create a MinIO client."""
    settings = get_settings()
    return Minio(
        settings.minio_endpoint,
        access_key=settings.minio_access_key,
        secret_key=settings.minio_secret_key,
        secure=settings.minio_use_ssl,
    )


def storage_path_for(owner_id: uuid.UUID, file_id: uuid.UUID) -> str:
    """Object key for a file; derived from ids only, never from the name."""
    return f"{owner_id}/{file_id}"


class ObjectStore:
    """Files bucket keyed by ``{owner_id}/{file_id}``."""

    def __init__(self, client: Minio, bucket: str, max_file_size: int):
        self.client = client
        self.bucket = bucket
        self.max_file_size = max_file_size

    def ensure_bucket_exists(self) -> None:
        """Create the files bucket if it doesn't exist."""
        if not self.client.bucket_exists(self.bucket):
            self.client.make_bucket(self.bucket)
            logger.info("Created MinIO bucket: %s", self.bucket)
        else:
            logger.info("MinIO bucket already exists: %s", self.bucket)

    def check_size(self, size: int) -> None:
        if size > self.max_file_size:
            raise StorageWriteError(
                f"File must be less than {self.max_file_size // 1_000_000}MB"
            )

    def upload(
        self,
        owner_id: uuid.UUID,
        file_id: uuid.UUID,
        content: bytes,
        content_type: str | None = None,
    ) -> str:
        """Write (or overwrite) the blob for a file and return its path."""
        self.check_size(len(content))
        path = storage_path_for(owner_id, file_id)
        try:
            self.client.put_object(
                self.bucket,
                path,
                io.BytesIO(content),
                length=len(content),
                content_type=content_type or "application/octet-stream",
            )
        except _STORE_ERRORS as e:
            logger.error("Error uploading file to storage: %s", e)
            raise StorageWriteError(f"Error uploading file to storage: {e}") from e
        return path

    def delete(self, path: str) -> None:
        try:
            self.client.remove_object(self.bucket, path)
        except _STORE_ERRORS as e:
            raise StorageWriteError(f"Error removing {path} from storage: {e}") from e

    def signed_url(self, path: str, expires_seconds: int) -> str:
        return self.client.presigned_get_object(
            self.bucket, path, expires=timedelta(seconds=expires_seconds),
        )


_store: ObjectStore | None = None


def get_object_store() -> ObjectStore:
    global _store
    if _store is None:
        settings = get_settings()
        _store = ObjectStore(
            get_minio_client(),
            settings.minio_bucket,
            max_file_size=settings.max_file_size_mb * 1_000_000,
        )
    return _store
