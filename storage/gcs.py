import asyncio

from google.cloud import storage as gcs_lib

from config import settings
from exceptions import StorageError
from storage.base import ObjectStorage
from utils.logging import get_logger

logger = get_logger("storage.gcs")


class GCSAssetStorage(ObjectStorage):
    """Google Cloud Storage backend for listing images.

    Buckets are expected to be publicly readable; objects are addressed by
    the deterministic paths from storage.paths, so re-uploading a path
    overwrites it.

    Authentication:
    - Cloud Run (production): Workload identity (automatic)
    - Local development: GOOGLE_APPLICATION_CREDENTIALS env var
    """

    def __init__(self):
        self._client = None

    @property
    def client(self):
        """Lazy-initialized GCS client."""
        if self._client is None:
            self._client = gcs_lib.Client(project=settings.gcs_project or None)
        return self._client

    @staticmethod
    def public_url(bucket: str, path: str) -> str:
        return f"https://storage.googleapis.com/{bucket}/{path}"

    async def upload(self, data: bytes, path: str, bucket: str, content_type: str) -> str:
        try:
            blob = self.client.bucket(bucket).blob(path)
            await asyncio.to_thread(blob.upload_from_string, data, content_type=content_type)
        except Exception as e:
            raise StorageError(
                f"GCS upload failed: {e}",
                bucket=bucket,
                path=path,
            ) from e

        logger.info(
            f"Uploaded gs://{bucket}/{path}",
            extra={"context": {"bucket": bucket, "path": path, "size": len(data)}},
        )
        return self.public_url(bucket, path)

    async def remove(self, paths: list[str], bucket: str) -> None:
        if not paths:
            return
        try:
            gcs_bucket = self.client.bucket(bucket)
            blobs = [gcs_bucket.blob(path) for path in paths]
            # on_error swallows NotFound for objects that are already gone
            await asyncio.to_thread(gcs_bucket.delete_blobs, blobs, on_error=lambda blob: None)
        except Exception as e:
            raise StorageError(
                f"GCS delete failed: {e}",
                bucket=bucket,
                paths=paths,
            ) from e

        logger.info(
            f"Removed {len(paths)} objects from gs://{bucket}",
            extra={"context": {"bucket": bucket, "paths": paths}},
        )


# Module-level singleton
gcs_storage = GCSAssetStorage()
