from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ResolvedContext(BaseModel):
    """Names derived once at startup and threaded through every later step."""

    model_config = ConfigDict(frozen=True)

    region: str
    account_id: str
    bucket_name: str
    result_location: str = Field(..., description="Athena result output URI")
    dataset_location: str = Field(..., description="S3 URI the dataset subtree is synced to")

    @staticmethod
    def derive(
        *,
        region: str,
        account_id: str,
        bucket_prefix: str,
        results_prefix: str,
        dataset_prefix: str,
    ) -> "ResolvedContext":
        bucket_name = f"{bucket_prefix}-{account_id}"
        return ResolvedContext(
            region=region,
            account_id=account_id,
            bucket_name=bucket_name,
            result_location=f"s3://{bucket_name}/{_as_prefix(results_prefix)}",
            dataset_location=f"s3://{bucket_name}/{_as_prefix(dataset_prefix)}",
        )


def _as_prefix(prefix: str) -> str:
    prefix = prefix.strip("/")
    return f"{prefix}/" if prefix else ""


class DownloadArtifact(BaseModel):
    source_link_id: str
    local_path: Path
    content_type: Optional[str] = Field(default=None, description="MIME type sniffed from the payload")
    size: int = 0
    verified: bool = False


class ExtractedTree(BaseModel):
    model_config = ConfigDict(frozen=True)

    root_path: Path
    canonical_subpath: Path

    @property
    def canonical_path(self) -> Path:
        return self.root_path / self.canonical_subpath


class QueryState(str, Enum):
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class QueryJob(BaseModel):
    id: str
    database: Optional[str] = None
    statement: str
    state: QueryState = QueryState.QUEUED
    reason: Optional[str] = None


class SetupReport(BaseModel):
    bucket_name: str
    workgroup: str
    result_location: str
    dataset_location: str
    database: str
    tables: list[str]
