"""Custom storage backend for S3-compatible storage."""

import logging
from typing import final, override

from botocore.exceptions import BotoCoreError, ClientError
from storages.backends.s3 import S3Storage
from storages.utils import clean_name

from server.apps.files.exceptions import UpstreamUnavailableError

logger = logging.getLogger(__name__)


@final
class FileStorage(S3Storage):
    """Custom S3 storage backend for user files.

    Extends django-storages S3Storage with:
    - Presigned write handles so clients upload straight to the bucket
    - Presigned read handles for direct downloads
    - Best-effort removal of objects orphaned by abandoned uploads
    - Enhanced error logging

    Signing failures surface as UpstreamUnavailableError.
    """

    def get_write_handle(self, key: str, content_type: str, ttl: int) -> str:
        """Issue a presigned PUT URL valid for one key only.

        Args:
            key: Storage key the client may write.
            content_type: MIME type the upload must be sent with.
            ttl: Lifetime of the URL in seconds.

        Returns:
            Presigned URL.

        Raises:
            UpstreamUnavailableError: If the URL cannot be signed.
        """
        params = {
            'Bucket': self.bucket_name,
            'Key': self._normalize_name(clean_name(key)),
            'ContentType': content_type,
        }
        try:
            url = self.bucket.meta.client.generate_presigned_url(
                'put_object',
                Params=params,
                ExpiresIn=ttl,
                HttpMethod='PUT',
            )
        except (BotoCoreError, ClientError) as exc:
            logger.exception('Failed to sign upload URL: %s', key)
            raise UpstreamUnavailableError('Object store unavailable') from exc

        logger.debug('Issued write handle: %s (ttl=%ds)', key, ttl)
        return url

    def get_read_handle(self, key: str, ttl: int) -> str:
        """Issue a presigned GET URL for an existing object.

        Args:
            key: Storage key to read.
            ttl: Lifetime of the URL in seconds.

        Returns:
            Presigned URL.

        Raises:
            UpstreamUnavailableError: If the URL cannot be signed.
        """
        try:
            url = self.url(key, expire=ttl)
        except (BotoCoreError, ClientError) as exc:
            logger.exception('Failed to sign download URL: %s', key)
            raise UpstreamUnavailableError('Object store unavailable') from exc

        logger.debug('Issued read handle: %s (ttl=%ds)', key, ttl)
        return url

    @override
    def delete(self, name: str) -> None:
        """Delete file from S3 with error handling and logging.

        Args:
            name: Storage path of file to delete.

        Raises:
            Exception: If S3 delete fails.
        """
        try:
            logger.info('Deleting file from storage: %s', name)
            super().delete(name)
            logger.info('Successfully deleted file: %s', name)
        except Exception:
            logger.exception('Failed to delete file from storage: %s', name)
            raise

    def discard_object(self, key: str) -> None:
        """Delete an object left behind by an unconfirmed upload.

        Called by the reservation sweep. The client may never have used
        its write handle, so a missing object is fine. This is a
        best-effort operation: failures are logged, not raised, and the
        next sweep does not retry because the reservation is gone.

        Args:
            key: Storage key of the abandoned upload.
        """
        try:
            logger.warning('Discarding unconfirmed upload: %s', key)
            self.delete(key)
        except (BotoCoreError, ClientError):
            # The object stays in storage without metadata; it is garbage
            # by convention because no FileRecord references it.
            logger.exception('Failed to discard object, orphaned: %s', key)
