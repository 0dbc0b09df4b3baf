from __future__ import annotations

import asyncio
import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from tqdm import tqdm

from warehouse_setup.services.s3_service import S3Service, S3ServiceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncResult:
    uploaded: int
    deleted: int
    unchanged: int


class DatasetSyncService:
    """Mirror a local directory into one S3 prefix.

    Only keys under `prefix` are ever listed or deleted, so sibling prefixes in
    the same bucket (Athena results, other datasets) are left alone.
    """

    def __init__(self, *, s3: S3Service, concurrency: int = 10) -> None:
        self._s3 = s3
        self._concurrency = concurrency

    @staticmethod
    def _md5(path: Path) -> str:
        digest = hashlib.md5()
        with path.open("rb") as fh:
            for block in iter(lambda: fh.read(1024 * 1024), b""):
                digest.update(block)
        return digest.hexdigest()

    @classmethod
    def _needs_upload(cls, *, path: Path, remote: Optional[dict[str, Any]]) -> bool:
        if remote is None:
            return True
        if remote.get("Size") != path.stat().st_size:
            return True

        etag = str(remote.get("ETag") or "").strip('"')
        # Multipart ETags ("<hash>-<parts>") are not content MD5s; size match is all we can check.
        if etag and "-" not in etag:
            return etag != cls._md5(path)
        return False

    async def sync_directory(self, *, local_dir: Path, bucket: str, prefix: str, delete: bool = True) -> SyncResult:
        """Upload new/changed files and, with `delete`, prune remote keys that no longer exist locally.

        Steps:
        1) List existing objects under the prefix.
        2) Scan the local directory.
        3) Upload missing or changed files in parallel, showing a tqdm progress bar.
        4) Delete remote leftovers under the prefix.
        """

        if not local_dir.is_dir():
            raise S3ServiceError(f"Local directory not found: {local_dir}")

        prefix = prefix.strip("/")
        if not prefix:
            raise ValueError("A non-empty prefix is required; syncing the bucket root is not supported")
        prefix = prefix + "/"

        logger.info("Dataset sync: listing s3://%s/%s", bucket, prefix)
        remote_objects = {
            str(obj["Key"]): obj
            for obj in await self._s3.list_objects(bucket=bucket, prefix=prefix)
            if str(obj.get("Key", "")).startswith(prefix)
        }

        local_files = sorted(p for p in local_dir.rglob("*") if p.is_file())
        local_keys = {f"{prefix}{p.relative_to(local_dir).as_posix()}": p for p in local_files}

        planned = [
            (path, key)
            for key, path in local_keys.items()
            if self._needs_upload(path=path, remote=remote_objects.get(key))
        ]
        stale = sorted(key for key in remote_objects if key not in local_keys) if delete else []

        logger.info(
            "Dataset sync: local=%d, s3(prefix)=%d, to_upload=%d, to_delete=%d",
            len(local_files),
            len(remote_objects),
            len(planned),
            len(stale),
        )

        semaphore = asyncio.Semaphore(self._concurrency)

        async def _upload_one(path: Path, key: str) -> tuple[str, bool, Optional[str]]:
            async with semaphore:
                try:
                    await self._s3.upload_local_file(path=path, bucket=bucket, key=key)
                    return (key, True, None)
                except S3ServiceError as exc:
                    return (key, False, str(exc))

        tasks = [asyncio.create_task(_upload_one(path, key)) for path, key in planned]

        failed: list[str] = []
        for fut in tqdm(
            asyncio.as_completed(tasks),
            total=len(tasks),
            desc="Uploading dataset",
            unit="file",
            disable=None,
        ):
            key, ok, err = await fut
            if not ok:
                failed.append(key)
                logger.error("Dataset upload failed (key=%s): %s", key, err)

        if failed:
            raise S3ServiceError(f"{len(failed)} of {len(planned)} dataset uploads failed (first: {failed[0]})")

        await self._s3.delete_keys(bucket=bucket, keys=stale)

        result = SyncResult(
            uploaded=len(planned),
            deleted=len(stale),
            unchanged=len(local_keys) - len(planned),
        )
        logger.info(
            "Dataset sync complete: uploaded=%d, deleted=%d, unchanged=%d",
            result.uploaded,
            result.deleted,
            result.unchanged,
        )
        return result
