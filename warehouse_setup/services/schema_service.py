from __future__ import annotations

import logging
import re
from typing import Iterable, Optional, Sequence

from warehouse_setup.models.context import QueryJob
from warehouse_setup.models.tables import TableDefinition
from warehouse_setup.services.athena_service import AthenaService, AthenaServiceError
from warehouse_setup.services.config import ACCOUNT_ID_PLACEHOLDER


logger = logging.getLogger(__name__)


class SchemaValidationError(AthenaServiceError):
    default_hint = "Some tables were not created; check the Athena query history for the failing DDL."


# `$accountID` only when it is the whole token, so `$accountIDs` / `$accountID_x` stay untouched.
_PLACEHOLDER_PATTERN = re.compile(re.escape(ACCOUNT_ID_PLACEHOLDER) + r"(?![A-Za-z0-9_])")

_CREATE_EXTERNAL_TABLE = re.compile(
    r"\A(\s*CREATE\s+EXTERNAL\s+TABLE)(\s+)(?!\s*IF\s+NOT\s+EXISTS\b)",
    re.IGNORECASE,
)


def render_table_ddl(table: TableDefinition) -> str:
    """Render a catalog entry as Athena (Hive) DDL. Placeholders are left as-is."""

    columns = ", \n".join(f"  `{column.name}` {column.type}" for column in table.columns)
    fmt = table.format

    if fmt.serde:
        row_format = f"ROW FORMAT SERDE \n  '{fmt.serde}' "
    else:
        row_format = f"ROW FORMAT DELIMITED \n  FIELDS TERMINATED BY '{fmt.field_delimiter or ','}' "

    parts = [
        f"CREATE EXTERNAL TABLE `{table.name}`(\n{columns})",
        row_format,
        f"STORED AS INPUTFORMAT \n  '{fmt.input_format}' ",
        f"OUTPUTFORMAT \n  '{fmt.output_format}'",
        f"LOCATION\n  '{table.location}'",
    ]
    if table.properties:
        properties = ", \n".join(f"  '{key}'='{value}'" for key, value in table.properties.items())
        parts.append(f"TBLPROPERTIES (\n{properties})")

    return "\n".join(parts)


def substitute_account_id(text: str, account_id: str) -> str:
    if not account_id:
        raise ValueError("account_id must be provided")
    # A callable replacement keeps backslashes in the value literal.
    return _PLACEHOLDER_PATTERN.sub(lambda _: account_id, text)


def ensure_if_not_exists(statement: str) -> str:
    """Turn the leading `CREATE EXTERNAL TABLE` into `CREATE EXTERNAL TABLE IF NOT EXISTS`.

    Only the start of the statement is touched; statements that already carry
    the qualifier, or that are not table creations, come back unchanged.
    """

    return _CREATE_EXTERNAL_TABLE.sub(r"\1 IF NOT EXISTS\2", statement, count=1)


def prepare_table_statement(table: TableDefinition, *, account_id: str) -> str:
    return ensure_if_not_exists(substitute_account_id(render_table_ddl(table), account_id))


class SchemaService:
    """Applies the database and table DDL through Athena, one statement at a time.

    There is no rollback across the catalog: each statement is idempotent on its
    own, so a rerun after a failure picks up where the last one stopped.
    """

    def __init__(self, *, athena: AthenaService, workgroup: str, output_location: str, database: str) -> None:
        self._athena = athena
        self._workgroup = workgroup
        self._output_location = output_location
        self._database = database

    @property
    def database(self) -> str:
        return self._database

    async def _run(self, statement: str, *, database: Optional[str]) -> QueryJob:
        return await self._athena.execute(
            statement,
            workgroup=self._workgroup,
            output_location=self._output_location,
            database=database,
        )

    async def apply_database(self) -> QueryJob:
        job = await self._run(f"CREATE DATABASE IF NOT EXISTS {self._database}", database=None)
        logger.info("Database ready: %s", self._database)
        return job

    async def apply_table(self, table: TableDefinition, *, account_id: str) -> QueryJob:
        job = await self._run(prepare_table_statement(table, account_id=account_id), database=self._database)
        logger.info("Table ready: %s.%s", self._database, table.name)
        return job

    async def apply_catalog(self, tables: Sequence[TableDefinition], *, account_id: str) -> list[QueryJob]:
        return [await self.apply_table(table, account_id=account_id) for table in tables]

    async def list_tables(self) -> list[str]:
        job = await self._run("SHOW TABLES", database=self._database)
        return await self._athena.first_column_values(query_id=job.id)

    async def validate_tables(self, expected: Iterable[str]) -> list[str]:
        """Run SHOW TABLES and fail if any expected table is missing."""

        listed = await self.list_tables()
        present = {name.strip().lower() for name in listed}
        missing = [name for name in expected if name.lower() not in present]
        if missing:
            raise SchemaValidationError(f"Tables missing from {self._database}: {', '.join(missing)}")
        return listed
