from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ColumnDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: str


class TableFormat(BaseModel):
    """How Athena reads the files behind a table.

    Delimited text tables set `field_delimiter`; SerDe based tables (Parquet)
    set `serde` instead.
    """

    model_config = ConfigDict(frozen=True)

    input_format: str
    output_format: str
    field_delimiter: Optional[str] = None
    serde: Optional[str] = None


TEXT_DELIMITED_PIPE = TableFormat(
    input_format="org.apache.hadoop.mapred.TextInputFormat",
    output_format="org.apache.hadoop.hive.ql.io.HiveIgnoreKeyTextOutputFormat",
    field_delimiter="|",
)

PARQUET = TableFormat(
    input_format="org.apache.hadoop.hive.ql.io.parquet.MapredParquetInputFormat",
    output_format="org.apache.hadoop.hive.ql.io.parquet.MapredParquetOutputFormat",
    serde="org.apache.hadoop.hive.ql.io.parquet.serde.ParquetHiveSerDe",
)


class TableDefinition(BaseModel):
    """One external table of the catalog.

    `location` may contain the literal `$accountID` placeholder; it is only
    replaced when the definition is rendered for a concrete account.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    columns: tuple[ColumnDefinition, ...]
    format: TableFormat
    location: str
    properties: dict[str, str] = Field(default_factory=dict)
