from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional, Sequence

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from warehouse_setup.services.errors import SetupError


logger = logging.getLogger(__name__)


class S3ServiceError(SetupError):
    default_hint = "Check IAM permissions for the bucket (s3:ListBucket, s3:PutObject, s3:DeleteObject)."


class S3Service:
    """Thin async wrapper over the S3 calls the setup needs."""

    # S3 DeleteObjects accepts at most 1000 keys per call.
    _DELETE_BATCH_SIZE = 1000

    def __init__(self, *, region_name: Optional[str] = None, session: Optional[Any] = None) -> None:
        self._region_name = region_name
        self._session = session or aioboto3.Session()

    def _client(self) -> Any:
        return self._session.client("s3", region_name=self._region_name)

    async def bucket_exists(self, *, bucket: str) -> bool:
        try:
            s3_client: Any = self._client()
            async with s3_client as s3:
                await s3.head_bucket(Bucket=bucket)
            return True
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            logger.debug("head_bucket %s failed with %s", bucket, code or exc)
            return False
        except BotoCoreError as exc:
            raise S3ServiceError(f"Failed to check bucket {bucket}") from exc

    async def create_bucket(self, *, bucket: str, region: str) -> None:
        """Create `bucket`; us-east-1 rejects an explicit LocationConstraint."""

        kwargs: dict[str, Any] = {"Bucket": bucket}
        if region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": region}

        try:
            s3_client: Any = self._client()
            async with s3_client as s3:
                await s3.create_bucket(**kwargs)
        except (ClientError, BotoCoreError) as exc:
            raise S3ServiceError(f"Failed to create bucket {bucket}") from exc

    async def list_objects(self, *, bucket: str, prefix: str) -> list[dict[str, Any]]:
        """All objects under `prefix` (paginated)."""

        try:
            objects: list[dict[str, Any]] = []
            s3_client: Any = self._client()
            async with s3_client as s3:
                paginator = s3.get_paginator("list_objects_v2")
                async for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                    objects.extend(page.get("Contents", []))
            return objects
        except (ClientError, BotoCoreError) as exc:
            logger.exception("S3 list_objects failed")
            raise S3ServiceError(f"Failed to list s3://{bucket}/{prefix}") from exc

    async def upload_local_file(self, *, path: Path, bucket: str, key: str) -> str:
        """Upload a local file (multipart for large files) and return its key."""

        try:
            if not key:
                raise ValueError("'key' must be provided")
            if not path.is_file():
                raise FileNotFoundError(str(path))

            s3_client: Any = self._client()
            async with s3_client as s3:
                await s3.upload_file(str(path), bucket, key)
            return key
        except Exception as exc:
            logger.exception("S3 upload_local_file failed")
            raise S3ServiceError(f"Failed to upload {path} to s3://{bucket}/{key}") from exc

    async def delete_keys(self, *, bucket: str, keys: Sequence[str]) -> None:
        if not keys:
            return

        try:
            s3_client: Any = self._client()
            async with s3_client as s3:
                for start in range(0, len(keys), self._DELETE_BATCH_SIZE):
                    batch = keys[start : start + self._DELETE_BATCH_SIZE]
                    response = await s3.delete_objects(
                        Bucket=bucket,
                        Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
                    )
                    errors = response.get("Errors") or []
                    if errors:
                        first = errors[0]
                        raise S3ServiceError(
                            f"Failed to delete {len(errors)} object(s), e.g. {first.get('Key')}: {first.get('Message')}"
                        )
        except (ClientError, BotoCoreError) as exc:
            raise S3ServiceError(f"Failed to delete objects from s3://{bucket}") from exc
