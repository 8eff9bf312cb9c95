"""S3 object store for compressed event posters."""
import logging
from typing import Dict, List, Optional, Sequence
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from processor.errors import StoreError

logger = logging.getLogger(__name__)


class S3PosterStore:
    """Object store operations on one S3 bucket."""

    DELETE_BATCH_SIZE = 1000  # S3 DeleteObjects limit

    def __init__(
        self,
        bucket: str,
        region: str = 'us-east-1',
        public_base_url: Optional[str] = None,
        timeout: int = 30,
        client=None
    ):
        """
        Initialize the S3 client.

        Args:
            bucket: Bucket holding the posters
            region: AWS region of the bucket
            public_base_url: Prefix for public URLs (e.g. a CDN); defaults to
                the bucket's virtual-hosted S3 URL
            timeout: Connect and read timeout in seconds
            client: Optional pre-built boto3 S3 client
        """
        self.bucket = bucket
        self.region = region
        self.public_base_url = public_base_url.rstrip('/') if public_base_url else None
        self.client = client or boto3.client(
            's3',
            region_name=region,
            config=Config(
                connect_timeout=timeout,
                read_timeout=timeout,
                retries={'max_attempts': 1}
            )
        )
        logger.info(f"Initialized S3PosterStore for bucket: {bucket}")

    def upload(self, path: str, data: bytes, content_type: str) -> None:
        """
        Store bytes at ``path``, replacing any existing object.

        Raises:
            StoreError: If the put fails
        """
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=path,
                Body=data,
                ContentType=content_type
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"upload of {path} failed: {e}") from e
        logger.debug(f"Uploaded {path} ({len(data)} bytes)")

    def get_public_url(self, path: str) -> str:
        key = quote(path)
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def list(self, prefix: str) -> List[Dict[str, str]]:
        """
        List objects under a prefix.

        Returns:
            One ``{'name': key}`` dict per object

        Raises:
            StoreError: If listing fails
        """
        entries = []
        try:
            paginator = self.client.get_paginator('list_objects_v2')
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for item in page.get('Contents', []):
                    entries.append({'name': item['Key']})
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"listing '{prefix}' failed: {e}") from e
        return entries

    def remove(self, paths: Sequence[str]) -> None:
        """
        Delete objects in batches of 1000.

        Raises:
            StoreError: If any batch fails or S3 reports per-key errors
        """
        paths = list(paths)
        for i in range(0, len(paths), self.DELETE_BATCH_SIZE):
            batch = paths[i:i + self.DELETE_BATCH_SIZE]
            try:
                response = self.client.delete_objects(
                    Bucket=self.bucket,
                    Delete={
                        'Objects': [{'Key': path} for path in batch],
                        'Quiet': True
                    }
                )
            except (ClientError, BotoCoreError) as e:
                raise StoreError(
                    f"removing batch {i // self.DELETE_BATCH_SIZE + 1} failed: {e}"
                ) from e

            errors = response.get('Errors', [])
            if errors:
                keys = ', '.join(error['Key'] for error in errors[:5])
                raise StoreError(f"{len(errors)} objects could not be removed: {keys}")

        logger.info(f"Removed {len(paths)} objects from {self.bucket}")
