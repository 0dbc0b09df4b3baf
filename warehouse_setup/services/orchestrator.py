from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from warehouse_setup.models.context import ResolvedContext, SetupReport
from warehouse_setup.models.tables import TableDefinition
from warehouse_setup.services.archive_service import ArchiveService
from warehouse_setup.services.config import SetupConfig
from warehouse_setup.services.dataset_sync_service import DatasetSyncService
from warehouse_setup.services.download_service import DownloadService, extract_file_id
from warehouse_setup.services.errors import SetupError
from warehouse_setup.services.identity_service import ConfigurationError, IdentityService
from warehouse_setup.services.progress import LoggingProgressReporter, ProgressEvent, ProgressReporter
from warehouse_setup.services.schema_service import SchemaService
from warehouse_setup.services.setup.athena_setup_service import AthenaSetupService
from warehouse_setup.services.setup.s3_setup_service import S3SetupService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProvisioningServices:
    """Services whose AWS clients depend on the resolved region/account."""

    s3_setup: S3SetupService
    sync: DatasetSyncService
    athena_setup: AthenaSetupService
    schema: SchemaService


ProvisioningFactory = Callable[[ResolvedContext], ProvisioningServices]


class SetupOrchestrator:
    """
    Runs the whole provisioning sequence once, strictly in order:

      prerequisites -> region -> account -> names -> bucket -> download+verify
      -> extract+normalize -> upload -> workgroup -> database -> tables -> SHOW TABLES

    The first failure aborts the run; the failing step name is attached to the
    error. Every step is idempotent, so the run is simply repeated after a fix.
    """

    # Steps that are not per-table: 12 before the catalog, 1 after it.
    _FIXED_STEPS = 13

    def __init__(
        self,
        *,
        config: SetupConfig,
        identity: IdentityService,
        downloader: DownloadService,
        archive: ArchiveService,
        provisioning: ProvisioningFactory,
        catalog: Sequence[TableDefinition],
        progress: Optional[ProgressReporter] = None,
    ) -> None:
        self.config = config
        self.identity = identity
        self.downloader = downloader
        self.archive = archive
        self.provisioning = provisioning
        self.catalog = tuple(catalog)
        self.progress: ProgressReporter = progress or LoggingProgressReporter()
        self._total = self._FIXED_STEPS + len(self.catalog)
        self._index = 0
        self._current_step = "startup"

    def _step(self, message: str) -> None:
        self._index += 1
        self._current_step = message.rstrip(".")
        self.progress.step(ProgressEvent(index=self._index, total=self._total, message=message))

    async def run(self) -> SetupReport:
        self._index = 0
        try:
            return await self._run()
        except SetupError as exc:
            if exc.step is None:
                exc.step = self._current_step
            raise
        finally:
            self.progress.close()

    async def _run(self) -> SetupReport:
        config = self.config

        self._step("Validating prerequisites (AWS credentials)...")
        if not await self.identity.has_credentials():
            raise ConfigurationError(
                "No AWS credentials found",
                hint="Configure credentials (aws configure, AWS_PROFILE or an instance role).",
            )

        self._step("Preparing work directory...")
        try:
            config.workdir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigurationError(
                f"Cannot create work directory {config.workdir}",
                hint="Point SETUP_WORKDIR at a writable location.",
            ) from exc

        self._step("Detecting AWS region...")
        region = await self.identity.resolve_region(config.region)
        logger.info("Region: %s", region)

        self._step("Resolving account id via STS...")
        account_id = await self.identity.caller_account_id(region=region)
        logger.info("Account ID: %s", account_id)

        self._step("Defining resources...")
        ctx = ResolvedContext.derive(
            region=region,
            account_id=account_id,
            bucket_prefix=config.bucket_prefix,
            results_prefix=config.results_prefix,
            dataset_prefix=config.dataset_prefix,
        )
        services = self.provisioning(ctx)
        logger.info("Target bucket: s3://%s", ctx.bucket_name)
        logger.info("Athena output: %s", ctx.result_location)
        logger.info("WorkGroup: %s", config.workgroup)

        self._step("Creating S3 bucket (idempotent)...")
        await services.s3_setup.ensure_bucket(bucket=ctx.bucket_name, region=ctx.region)

        self._step("Extracting file id from the share link...")
        file_id = extract_file_id(config.share_link)
        logger.info("Share file id: %s", file_id)

        self._step("Downloading and verifying the dataset archive...")
        artifact = await self.downloader.fetch(
            file_id=file_id,
            destination=config.workdir / "artifact_download.bin",
        )

        self._step("Extracting and normalizing the archive layout...")
        tree = self.archive.prepare(artifact, scratch_dir=config.workdir / "extracted")

        self._step("Uploading the dataset to the bucket (sync, idempotent)...")
        await services.sync.sync_directory(
            local_dir=tree.canonical_path,
            bucket=ctx.bucket_name,
            prefix=config.dataset_prefix,
            delete=True,
        )

        self._step("Creating/updating the Athena workgroup (idempotent)...")
        await services.athena_setup.ensure_workgroup(name=config.workgroup, output_location=ctx.result_location)

        self._step(f"Creating database {services.schema.database} (idempotent)...")
        await services.schema.apply_database()

        for table in self.catalog:
            self._step(f"Creating table {table.name} (idempotent)...")
            await services.schema.apply_table(table, account_id=ctx.account_id)

        self._step("Final validation (SHOW TABLES)...")
        table_names = [table.name for table in self.catalog]
        await services.schema.validate_tables(table_names)

        return SetupReport(
            bucket_name=ctx.bucket_name,
            workgroup=config.workgroup,
            result_location=ctx.result_location,
            dataset_location=ctx.dataset_location,
            database=services.schema.database,
            tables=table_names,
        )
