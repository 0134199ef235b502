"""
Key-value storage abstraction for small persisted state (credential override, saved model library).

Backends:
- Local filesystem (default, for development)
- In-memory (tests, ephemeral sessions)
- Cloudflare R2 (S3-compatible)
- AWS S3
"""

import os
import logging
import tempfile
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

# Storage backend type
STORAGE_TYPE = os.getenv("STORAGE_TYPE", "local").lower()  # 'local', 'memory', 'r2', or 's3'

# R2/S3 configuration
R2_ENDPOINT_URL = os.getenv("R2_ENDPOINT_URL")
R2_ACCOUNT_ID = os.getenv("R2_ACCOUNT_ID")
R2_ACCESS_KEY_ID = os.getenv("R2_ACCESS_KEY_ID")
R2_SECRET_ACCESS_KEY = os.getenv("R2_SECRET_ACCESS_KEY")
R2_BUCKET_NAME = os.getenv("R2_BUCKET_NAME")

# AWS S3 configuration (fallback)
AWS_S3_BUCKET_NAME = os.getenv("AWS_S3_BUCKET_NAME")
AWS_S3_REGION = os.getenv("AWS_S3_REGION", "us-east-1")

STATE_PREFIX = os.getenv("SWAPNET_STATE_PREFIX", "swapnet-state/")


class KeyValueStore:
    """Abstract base class for key-value stores. Values are strings (usually JSON)."""

    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None when the key is absent."""
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        """Remove the key. Deleting an absent key is not an error."""
        raise NotImplementedError


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class LocalKeyValueStore(KeyValueStore):
    """One file per key under base_dir; writes are atomic (temp file + rename)."""

    def __init__(self, base_dir: str = "data"):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Initialized local key-value storage at: {self.base_dir}")

    def _path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.base_dir / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        fd, tmp_name = tempfile.mkstemp(dir=str(self.base_dir), prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug(f"Saved key locally: {path}")

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class S3KeyValueStore(KeyValueStore):
    """
    Stores each key as an object under `prefix` in an S3-compatible bucket.
    Used for both AWS S3 and Cloudflare R2.
    """

    def __init__(self, bucket_name: str, s3_client, prefix: str = STATE_PREFIX):
        self.bucket_name = bucket_name
        self.s3_client = s3_client
        self.prefix = prefix
        logger.info(f"Initialized S3 key-value storage: bucket={bucket_name}, prefix={prefix}")

    def _object_key(self, key: str) -> str:
        return f"{self.prefix}{key}.json"

    def get(self, key: str) -> Optional[str]:
        from botocore.exceptions import ClientError

        try:
            obj = self.s3_client.get_object(Bucket=self.bucket_name, Key=self._object_key(key))
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                return None
            raise
        return obj["Body"].read().decode("utf-8")

    def set(self, key: str, value: str) -> None:
        self.s3_client.put_object(
            Bucket=self.bucket_name,
            Key=self._object_key(key),
            Body=value.encode("utf-8"),
            ContentType="application/json",
        )
        logger.info(f"Saved key to bucket {self.bucket_name}: {self._object_key(key)}")

    def delete(self, key: str) -> None:
        self.s3_client.delete_object(Bucket=self.bucket_name, Key=self._object_key(key))

    @classmethod
    def for_r2(cls) -> "S3KeyValueStore":
        import boto3
        from botocore.client import Config

        if not R2_ACCESS_KEY_ID or not R2_SECRET_ACCESS_KEY:
            raise ValueError("R2_ACCESS_KEY_ID and R2_SECRET_ACCESS_KEY must be set for R2 storage")

        if not R2_BUCKET_NAME:
            raise ValueError("R2_BUCKET_NAME must be set for R2 storage")

        # Determine endpoint URL
        endpoint_url = R2_ENDPOINT_URL
        if not endpoint_url and R2_ACCOUNT_ID:
            endpoint_url = f"https://{R2_ACCOUNT_ID}.r2.cloudflarestorage.com"

        if not endpoint_url:
            raise ValueError("Either R2_ENDPOINT_URL or R2_ACCOUNT_ID must be set for R2 storage")

        client = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=R2_ACCESS_KEY_ID,
            aws_secret_access_key=R2_SECRET_ACCESS_KEY,
            config=Config(signature_version="s3v4"),
        )
        return cls(R2_BUCKET_NAME, client)

    @classmethod
    def for_s3(cls) -> "S3KeyValueStore":
        import boto3

        if not AWS_S3_BUCKET_NAME:
            raise ValueError("AWS_S3_BUCKET_NAME must be set for S3 storage")

        aws_access_key_id = os.getenv("AWS_ACCESS_KEY_ID")
        aws_secret_access_key = os.getenv("AWS_SECRET_ACCESS_KEY")
        if aws_access_key_id and aws_secret_access_key:
            client = boto3.client(
                "s3",
                region_name=AWS_S3_REGION,
                aws_access_key_id=aws_access_key_id,
                aws_secret_access_key=aws_secret_access_key,
            )
        else:
            # Use default credentials (IAM role, etc.)
            client = boto3.client("s3", region_name=AWS_S3_REGION)
        return cls(AWS_S3_BUCKET_NAME, client)


def get_key_value_store(base_dir: str = "data", storage_type: Optional[str] = None) -> KeyValueStore:
    """
    Get the key-value store for the configured STORAGE_TYPE.

    Args:
        base_dir: Base directory for local storage (ignored for the other backends)
        storage_type: Overrides STORAGE_TYPE when given
    """
    storage_type = (storage_type or STORAGE_TYPE).lower()

    if storage_type == "r2":
        return S3KeyValueStore.for_r2()
    elif storage_type == "s3":
        return S3KeyValueStore.for_s3()
    elif storage_type == "memory":
        return MemoryKeyValueStore()
    else:
        # Default to local storage
        return LocalKeyValueStore(base_dir=base_dir)
