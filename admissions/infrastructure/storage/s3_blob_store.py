"""
Adapter: S3 Blob Store

Concrete IBlobStore backed by boto3. Works with AWS S3 and with MinIO
(S3-compatible API); switching between them only changes the endpoint
and credentials.
"""

import asyncio
import hashlib
import logging
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from admissions.core.interfaces.blob_store import BlobStoreError, IBlobStore, StoredObject

logger = logging.getLogger(__name__)


class S3BlobStore(IBlobStore):
    """Document storage in an S3 bucket."""

    def __init__(
        self,
        bucket: str,
        endpoint_url: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        region: str = "us-east-1",
        public_base_url: Optional[str] = None,
        s3_client: Optional[Any] = None,
    ):
        """
        Args:
            bucket: Bucket holding the documents.
            endpoint_url: Custom endpoint (MinIO); None for AWS.
            access_key: Access key id; None to use the default credential chain.
            secret_key: Secret access key.
            region: Bucket region.
            public_base_url: Base of returned URLs; defaults to ``<endpoint>/<bucket>``.
            s3_client: Optional S3 client (for testing).
        """
        self._bucket = bucket
        self._endpoint_url = endpoint_url
        self._access_key = access_key
        self._secret_key = secret_key
        self._region = region
        self._s3_client = s3_client
        default_base = f"{endpoint_url.rstrip('/')}/{bucket}" if endpoint_url else f"https://{bucket}.s3.amazonaws.com"
        self._base_url = (public_base_url or default_base).rstrip("/")

    @property
    def s3_client(self):
        """Get S3 client."""
        if self._s3_client is None:
            self._s3_client = boto3.client(
                "s3",
                endpoint_url=self._endpoint_url,
                aws_access_key_id=self._access_key,
                aws_secret_access_key=self._secret_key,
                region_name=self._region,
            )
        return self._s3_client

    def url_for(self, path: str) -> str:
        return f"{self._base_url}/{path}"

    def key_for(self, url: str) -> str:
        prefix = f"{self._base_url}/"
        if not url.startswith(prefix):
            raise BlobStoreError(f"URL {url} does not belong to bucket {self._bucket}")
        return url[len(prefix):]

    async def put_object(self, data: bytes, path: str, content_type: str = "application/octet-stream") -> StoredObject:
        try:
            await asyncio.to_thread(
                self.s3_client.put_object,
                Bucket=self._bucket,
                Key=path,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 upload of {path} failed: {e}")
            raise BlobStoreError(f"Could not store {path}") from e

        logger.info(f"Stored s3://{self._bucket}/{path} ({len(data)} bytes)")
        return StoredObject(
            url=self.url_for(path),
            path=path,
            size_bytes=len(data),
            sha256=hashlib.sha256(data).hexdigest(),
            content_type=content_type,
        )

    async def delete_object(self, url: str) -> None:
        key = self.key_for(url)
        try:
            await asyncio.to_thread(self.s3_client.delete_object, Bucket=self._bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                return
            logger.error(f"S3 delete of {key} failed: {e}")
            raise BlobStoreError(f"Could not delete {key}") from e
        except BotoCoreError as e:
            logger.error(f"S3 delete of {key} failed: {e}")
            raise BlobStoreError(f"Could not delete {key}") from e
        logger.info(f"Deleted s3://{self._bucket}/{key}")
