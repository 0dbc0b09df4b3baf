from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from pathlib import Path
from typing import Optional

import typer

from warehouse_setup.models.context import SetupReport
from warehouse_setup.services.config import TPCDS_CATALOG, SetupConfig
from warehouse_setup.services.dependencies import get_setup_orchestrator
from warehouse_setup.services.errors import SetupError
from warehouse_setup.services.progress import LoggingProgressReporter, ProgressReporter, TqdmProgressReporter
from warehouse_setup.services.schema_service import prepare_table_statement

app = typer.Typer(
    name="warehouse-setup",
    help="Provision the TPC-DS lab warehouse on AWS (S3 bucket, dataset, Athena workgroup, database, tables).",
    no_args_is_help=True,
    add_completion=False,
)


def _ensure_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    formatter = logging.Formatter("%(levelname)s: %(message)s")
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
    else:
        root.setLevel(level)
        for handler in root.handlers:
            handler.setFormatter(formatter)
    # botocore is chatty at DEBUG and never useful at INFO here.
    logging.getLogger("botocore").setLevel(logging.WARNING)


def _print_failure(exc: SetupError) -> None:
    typer.echo("", err=True)
    typer.echo(f"ERROR [{exc.step or 'setup'}]: {exc}", err=True)
    if exc.__cause__ is not None:
        typer.echo(f"Cause: {exc.__cause__}", err=True)
    if exc.hint:
        typer.echo(f"Hint: {exc.hint}", err=True)


def _print_report(report: SetupReport) -> None:
    typer.echo("")
    typer.echo("[100%] Setup completed successfully.")
    typer.echo(f"Bucket: s3://{report.bucket_name}")
    typer.echo(f"Dataset: {report.dataset_location}")
    typer.echo(f"Athena WorkGroup: {report.workgroup}")
    typer.echo(f"Athena Output: {report.result_location}")
    typer.echo(f"Database: {report.database}")
    typer.echo(f"Tables: {', '.join(report.tables)}")


@app.command(name="run", help="Run the full, idempotent setup.")
def run_cmd(
    region: Optional[str] = typer.Option(None, help="AWS region (overrides profile, env and instance metadata)."),
    share_link: Optional[str] = typer.Option(None, help="Share link of the dataset archive."),
    workgroup: Optional[str] = typer.Option(None, help="Athena workgroup name."),
    workdir: Optional[Path] = typer.Option(None, help="Scratch directory for the download and extraction."),
    query_timeout: Optional[float] = typer.Option(
        None, help="Seconds to wait for each Athena query; 0 waits forever."
    ),
    progress_bar: bool = typer.Option(False, "--progress-bar/--no-progress-bar", help="Show a step progress bar."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    _ensure_logging(verbose)

    try:
        config = SetupConfig.from_env().with_overrides(
            region=region,
            share_link=share_link,
            workgroup=workgroup,
            workdir=workdir,
        )
    except ValueError as exc:
        typer.echo(f"ERROR [configuration]: {exc}", err=True)
        raise typer.Exit(code=1)

    if query_timeout is not None:
        config = replace(config, query_timeout_seconds=query_timeout if query_timeout > 0 else None)

    progress: ProgressReporter = TqdmProgressReporter() if progress_bar else LoggingProgressReporter()
    orchestrator = get_setup_orchestrator(config, progress=progress)

    try:
        report = asyncio.run(orchestrator.run())
    except SetupError as exc:
        _print_failure(exc)
        raise typer.Exit(code=1)

    _print_report(report)


@app.command(name="tables", help="Print the table DDL exactly as it would be submitted to Athena.")
def tables_cmd(
    account_id: str = typer.Option(..., help="AWS account id substituted into the table locations."),
) -> None:
    for table in TPCDS_CATALOG:
        typer.echo(f"-- {table.name}")
        typer.echo(prepare_table_statement(table, account_id=account_id) + ";")
        typer.echo("")


if __name__ == "__main__":
    app()
