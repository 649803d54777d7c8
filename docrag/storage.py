"""
Blob storage for raw uploads.
S3-compatible bucket (Supabase storage and MinIO expose the same API).
"""
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import BlobNotFoundError, BlobStorageError
from .logging_config import logger

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


class BlobStorage:
    def __init__(self, bucket: str, endpoint_url: Optional[str] = None,
                 region: Optional[str] = None, client=None) -> None:
        """
        Args:
            bucket: bucket holding uploaded PDFs
            endpoint_url: custom S3 endpoint; None for AWS
            region: bucket region
            client: pre-built boto3 S3 client (tests inject a stub)
        """
        self._bucket = bucket
        self._s3 = client or boto3.client("s3", endpoint_url=endpoint_url, region_name=region)

    def download(self, path: str) -> bytes:
        """
        Read an object fully into memory.

        Raises:
            BlobNotFoundError: no object at `path`
            BlobStorageError: any other storage failure
        """
        if not path:
            raise BlobNotFoundError(path)
        try:
            response = self._s3.get_object(Bucket=self._bucket, Key=path)
            body = response["Body"]
            try:
                return body.read()
            finally:
                body.close()
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            if code in _MISSING_CODES:
                raise BlobNotFoundError(path) from e
            raise BlobStorageError(f"Failed to download {path}: {code}", {"path": path}) from e
        except BotoCoreError as e:
            raise BlobStorageError(f"Failed to download {path}: {e}", {"path": path}) from e

    def upload(self, path: str, data: bytes, content_type: str = "application/pdf") -> None:
        try:
            self._s3.put_object(
                Bucket=self._bucket,
                Key=path,
                Body=data,
                ContentType=content_type,
                CacheControl="max-age=3600",
            )
        except (ClientError, BotoCoreError) as e:
            raise BlobStorageError(f"Failed to upload {path}: {e}", {"path": path}) from e
        logger.info("Blob uploaded", path=path, size_bytes=len(data))

    def delete(self, path: str) -> None:
        """Delete an object; a missing object is not an error."""
        try:
            self._s3.delete_object(Bucket=self._bucket, Key=path)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            if code in _MISSING_CODES:
                logger.info("Blob already absent", path=path)
                return
            raise BlobStorageError(f"Failed to delete {path}: {code}", {"path": path}) from e
        except BotoCoreError as e:
            raise BlobStorageError(f"Failed to delete {path}: {e}", {"path": path}) from e
