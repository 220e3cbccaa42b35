"""
S3Storage - S3/MinIO storage backend.
"""

import logging
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .errors import StorageError
from .s3_config import S3Config
from .storage_backend import StorageBackend


NOT_FOUND_CODES = {'404', 'NoSuchKey', 'NotFound'}


class S3Storage(StorageBackend):
    """
    Wrapper for S3/MinIO object operations.
    """

    def __init__(self, config: S3Config, logger: Optional[logging.Logger] = None):
        """
        Initialize S3 storage.

        Args:
            config: S3 configuration
            logger: Optional logger instance
        """
        self.config = config
        self.logger = logger or logging.getLogger(__name__)

        self._client = boto3.client(
            's3',
            endpoint_url=config.endpoint,
            aws_access_key_id=config.access_key,
            aws_secret_access_key=config.secret_key,
            region_name=config.region,
            config=Config(
                signature_version='s3v4',
                s3={'addressing_style': 'path'}
            ),
            verify=config.verify_ssl
        )

    @property
    def client(self):
        """Return the underlying boto3 client."""
        return self._client

    def put(self, path: str, data: bytes, content_type: str = 'application/octet-stream') -> None:
        key = self.config.key_for(path)
        try:
            self._client.put_object(
                Bucket=self.config.bucket,
                Key=key,
                Body=data,
                ContentType=content_type
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to upload {key}: {e}", path=path) from e
        self.logger.debug(f"Uploaded {key} ({len(data)} bytes)")

    def get(self, path: str) -> bytes:
        key = self.config.key_for(path)
        try:
            response = self._client.get_object(Bucket=self.config.bucket, Key=key)
            return response['Body'].read()
        except ClientError as e:
            if e.response['Error']['Code'] in NOT_FOUND_CODES:
                raise StorageError(f"Not found: {key}", path=path, not_found=True) from e
            raise StorageError(f"Failed to download {key}: {e}", path=path) from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to download {key}: {e}", path=path) from e

    def delete(self, path: str) -> None:
        key = self.config.key_for(path)
        try:
            self._client.delete_object(Bucket=self.config.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to delete {key}: {e}", path=path) from e
        self.logger.debug(f"Deleted {key}")

    def exists(self, path: str) -> bool:
        key = self.config.key_for(path)
        try:
            self._client.head_object(Bucket=self.config.bucket, Key=key)
            return True
        except ClientError as e:
            if e.response['Error']['Code'] in NOT_FOUND_CODES:
                return False
            raise StorageError(f"Failed to stat {key}: {e}", path=path) from e

    def public_url(self, path: str) -> str:
        key = self.config.key_for(path)
        if self.config.public_url:
            return f"{self.config.public_url.rstrip('/')}/{key}"
        endpoint = (self.config.endpoint or 'https://s3.amazonaws.com').rstrip('/')
        return f"{endpoint}/{self.config.bucket}/{key}"
