from __future__ import annotations

import logging

from warehouse_setup.services.errors import ProvisionError
from warehouse_setup.services.s3_service import S3Service, S3ServiceError


logger = logging.getLogger(__name__)


class S3SetupService:
    def __init__(self, *, s3: S3Service) -> None:
        self._s3 = s3

    async def ensure_bucket(self, *, bucket: str, region: str) -> bool:
        """Make sure `bucket` exists. Returns True when this call created it.

        A failed create is not fatal on its own: the bucket may have been created
        concurrently or may already be ours. Only a bucket that still cannot be
        reached afterwards is an error.
        """

        if await self._s3.bucket_exists(bucket=bucket):
            logger.info("Bucket already exists: s3://%s", bucket)
            return False

        logger.info("Creating bucket: s3://%s (region: %s)", bucket, region)
        try:
            await self._s3.create_bucket(bucket=bucket, region=region)
        except S3ServiceError as exc:
            logger.warning("Bucket creation failed (%s); checking whether it exists anyway", exc.__cause__ or exc)

        if not await self._s3.bucket_exists(bucket=bucket):
            raise ProvisionError(f"Could not create or access bucket s3://{bucket}")
        return True
