"""
S3Config - S3/MinIO connection settings.
"""

import os
from dataclasses import dataclass
from typing import List, Optional


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() not in ('0', 'false', 'no', 'off', '')


@dataclass
class S3Config:
    """
    S3 configuration.

    Attributes:
        endpoint: S3 endpoint URL (None for AWS default)
        bucket: Bucket holding attachments
        prefix: Key prefix prepended to every storage path
        access_key: Access key ID
        secret_key: Secret access key
        region: Region name
        verify_ssl: Verify TLS certificates
        public_url: Base URL for public links (defaults to endpoint/bucket)
    """
    endpoint: Optional[str] = None
    bucket: Optional[str] = None
    prefix: str = ''
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    region: Optional[str] = None
    verify_ssl: bool = True
    public_url: Optional[str] = None

    @classmethod
    def from_env(cls) -> 'S3Config':
        """Read configuration from S3_* environment variables."""
        return cls(
            endpoint=os.getenv('S3_ENDPOINT'),
            bucket=os.getenv('S3_BUCKET'),
            prefix=os.getenv('S3_PREFIX', ''),
            access_key=os.getenv('S3_ACCESS_KEY'),
            secret_key=os.getenv('S3_SECRET_KEY'),
            region=os.getenv('S3_REGION'),
            verify_ssl=_env_flag('S3_VERIFY_SSL', True),
            public_url=os.getenv('S3_PUBLIC_URL'),
        )

    def validate(self) -> List[str]:
        """Return a list of configuration problems (empty when valid)."""
        errors = []
        if not self.bucket:
            errors.append("S3_BUCKET is required")
        if not self.access_key:
            errors.append("S3_ACCESS_KEY is required")
        if not self.secret_key:
            errors.append("S3_SECRET_KEY is required")
        return errors

    def key_for(self, path: str) -> str:
        """Object key for a storage path."""
        prefix = self.prefix.strip('/')
        path = path.lstrip('/')
        return f"{prefix}/{path}" if prefix else path
