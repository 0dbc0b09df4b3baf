from __future__ import annotations

from typing import Any, Optional

import aioboto3

from warehouse_setup.models.context import ResolvedContext
from warehouse_setup.services.archive_service import ArchiveService
from warehouse_setup.services.athena_service import AthenaService
from warehouse_setup.services.config import REQUIRED_DATASET_DIRS, TPCDS_CATALOG, SetupConfig
from warehouse_setup.services.dataset_sync_service import DatasetSyncService
from warehouse_setup.services.download_service import DownloadService
from warehouse_setup.services.identity_service import IdentityService
from warehouse_setup.services.orchestrator import ProvisioningFactory, ProvisioningServices, SetupOrchestrator
from warehouse_setup.services.progress import ProgressReporter
from warehouse_setup.services.s3_service import S3Service
from warehouse_setup.services.schema_service import SchemaService
from warehouse_setup.services.setup.athena_setup_service import AthenaSetupService
from warehouse_setup.services.setup.s3_setup_service import S3SetupService


def get_identity_service(config: SetupConfig, *, session: Optional[Any] = None) -> IdentityService:
    return IdentityService(session=session, metadata_timeout_seconds=config.metadata_timeout_seconds)


def get_download_service(config: SetupConfig) -> DownloadService:
    return DownloadService(
        base_url=config.download_base_url,
        max_attempts=config.download_max_attempts,
        backoff_seconds=config.download_backoff_seconds,
    )


def get_archive_service(config: SetupConfig) -> ArchiveService:
    return ArchiveService(canonical_subpath=config.canonical_subpath, required_dirs=REQUIRED_DATASET_DIRS)


def get_athena_service(config: SetupConfig, *, region: str, session: Optional[Any] = None) -> AthenaService:
    return AthenaService(
        region_name=region,
        session=session,
        poll_interval_seconds=config.poll_interval_seconds,
        query_timeout_seconds=config.query_timeout_seconds,
    )


def get_provisioning_factory(config: SetupConfig, *, session: Optional[Any] = None) -> ProvisioningFactory:
    """Builds the region-bound services once the context is resolved."""

    def _factory(ctx: ResolvedContext) -> ProvisioningServices:
        s3 = S3Service(region_name=ctx.region, session=session)
        athena = get_athena_service(config, region=ctx.region, session=session)
        return ProvisioningServices(
            s3_setup=S3SetupService(s3=s3),
            sync=DatasetSyncService(s3=s3, concurrency=config.upload_concurrency),
            athena_setup=AthenaSetupService(athena=athena),
            schema=SchemaService(
                athena=athena,
                workgroup=config.workgroup,
                output_location=ctx.result_location,
                database=config.database,
            ),
        )

    return _factory


def get_setup_orchestrator(
    config: SetupConfig,
    *,
    progress: Optional[ProgressReporter] = None,
    session: Optional[Any] = None,
) -> SetupOrchestrator:
    """Wire a ready-to-run orchestrator; one aioboto3 session is shared by all services."""

    session = session or aioboto3.Session()
    return SetupOrchestrator(
        config=config,
        identity=get_identity_service(config, session=session),
        downloader=get_download_service(config),
        archive=get_archive_service(config),
        provisioning=get_provisioning_factory(config, session=session),
        catalog=TPCDS_CATALOG,
        progress=progress,
    )
