from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from warehouse_setup.models.context import QueryJob, QueryState
from warehouse_setup.services.errors import SetupError


logger = logging.getLogger(__name__)


class AthenaServiceError(SetupError):
    default_hint = "Check Athena/Glue permissions for your credentials and access to the results bucket."


class SubmissionError(AthenaServiceError):
    pass


class QueryExecutionError(AthenaServiceError):
    def __init__(self, message: str, *, query_id: str, state: QueryState, reason: Optional[str]) -> None:
        super().__init__(message)
        self.query_id = query_id
        self.state = state
        self.reason = reason


class QueryTimeoutError(AthenaServiceError):
    default_hint = "The query is still running in Athena; raise ATHENA_QUERY_TIMEOUT_SECONDS or check the console."


@dataclass(frozen=True)
class WorkGroupConfig:
    output_location: str
    enforce_configuration: bool = True
    publish_metrics: bool = True

    def as_configuration(self) -> dict[str, Any]:
        return {
            "ResultConfiguration": {"OutputLocation": self.output_location},
            "EnforceWorkGroupConfiguration": self.enforce_configuration,
            "PublishCloudWatchMetricsEnabled": self.publish_metrics,
        }

    def as_configuration_updates(self) -> dict[str, Any]:
        return {
            "ResultConfigurationUpdates": {"OutputLocation": self.output_location},
            "EnforceWorkGroupConfiguration": self.enforce_configuration,
            "PublishCloudWatchMetricsEnabled": self.publish_metrics,
        }


class AthenaService:
    """Async wrapper over the Athena control and query APIs.

    Queries are submitted and then polled at a fixed interval: DDL statements
    finish in seconds, so there is no backoff. `query_timeout_seconds=None`
    polls until the query reaches a terminal state.
    """

    _WORKGROUP_NOT_FOUND_CODES = frozenset({"InvalidRequestException", "ResourceNotFoundException"})

    def __init__(
        self,
        *,
        region_name: Optional[str] = None,
        session: Optional[Any] = None,
        poll_interval_seconds: float = 2.0,
        query_timeout_seconds: Optional[float] = 600.0,
    ) -> None:
        self._region_name = region_name
        self._session = session or aioboto3.Session()
        self._poll_interval = poll_interval_seconds
        self._query_timeout = query_timeout_seconds

    def _client(self) -> Any:
        return self._session.client("athena", region_name=self._region_name)

    # -----------------
    # Workgroups
    # -----------------

    async def get_workgroup(self, *, name: str) -> Optional[dict[str, Any]]:
        """Return the workgroup description, or None when it does not exist."""

        try:
            athena_client: Any = self._client()
            async with athena_client as athena:
                response = await athena.get_work_group(WorkGroup=name)
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in self._WORKGROUP_NOT_FOUND_CODES:
                return None
            raise AthenaServiceError(f"Failed to read workgroup {name}") from exc
        except BotoCoreError as exc:
            raise AthenaServiceError(f"Failed to read workgroup {name}") from exc

        return response.get("WorkGroup") or None

    async def create_workgroup(self, *, name: str, config: WorkGroupConfig) -> None:
        try:
            athena_client: Any = self._client()
            async with athena_client as athena:
                await athena.create_work_group(Name=name, Configuration=config.as_configuration())
        except (ClientError, BotoCoreError) as exc:
            raise AthenaServiceError(f"Failed to create workgroup {name}") from exc

    async def update_workgroup(self, *, name: str, config: WorkGroupConfig) -> None:
        try:
            athena_client: Any = self._client()
            async with athena_client as athena:
                await athena.update_work_group(
                    WorkGroup=name,
                    ConfigurationUpdates=config.as_configuration_updates(),
                )
        except (ClientError, BotoCoreError) as exc:
            raise AthenaServiceError(f"Failed to update workgroup {name}") from exc

    # -----------------
    # Queries
    # -----------------

    async def start_query(
        self,
        statement: str,
        *,
        workgroup: str,
        output_location: str,
        database: Optional[str] = None,
    ) -> QueryJob:
        kwargs: dict[str, Any] = {
            "QueryString": statement,
            "WorkGroup": workgroup,
            "ResultConfiguration": {"OutputLocation": output_location},
        }
        if database:
            kwargs["QueryExecutionContext"] = {"Database": database}

        try:
            athena_client: Any = self._client()
            async with athena_client as athena:
                response = await athena.start_query_execution(**kwargs)
        except (ClientError, BotoCoreError) as exc:
            raise SubmissionError("Athena rejected the query submission") from exc

        query_id = str(response.get("QueryExecutionId") or "").strip()
        if not query_id or query_id == "None":
            raise SubmissionError("Athena returned no query execution id")

        return QueryJob(id=query_id, database=database, statement=statement)

    @staticmethod
    async def _query_status(athena: Any, query_id: str) -> tuple[Optional[QueryState], Optional[str]]:
        response = await athena.get_query_execution(QueryExecutionId=query_id)
        status = (response.get("QueryExecution") or {}).get("Status") or {}
        raw_state = str(status.get("State") or "")
        try:
            state: Optional[QueryState] = QueryState(raw_state)
        except ValueError:
            state = None
        return state, status.get("StateChangeReason")

    async def wait_for_query(self, job: QueryJob) -> QueryJob:
        """Poll `job` until SUCCEEDED; FAILED/CANCELLED raise QueryExecutionError."""

        deadline = time.monotonic() + self._query_timeout if self._query_timeout else None

        try:
            athena_client: Any = self._client()
            async with athena_client as athena:
                while True:
                    state, reason = await self._query_status(athena, job.id)

                    if state is QueryState.SUCCEEDED:
                        return job.model_copy(update={"state": state, "reason": reason})
                    if state in (QueryState.FAILED, QueryState.CANCELLED):
                        raise QueryExecutionError(
                            f"Athena query {state.value}: {reason or 'no reason reported'}",
                            query_id=job.id,
                            state=state,
                            reason=reason,
                        )

                    if deadline is not None and time.monotonic() >= deadline:
                        raise QueryTimeoutError(
                            f"Athena query {job.id} still {state.value if state else 'pending'} "
                            f"after {self._query_timeout:.0f}s"
                        )
                    await asyncio.sleep(self._poll_interval)
        except (ClientError, BotoCoreError) as exc:
            raise AthenaServiceError(f"Failed to poll query {job.id}") from exc

    async def execute(
        self,
        statement: str,
        *,
        workgroup: str,
        output_location: str,
        database: Optional[str] = None,
    ) -> QueryJob:
        job = await self.start_query(
            statement,
            workgroup=workgroup,
            output_location=output_location,
            database=database,
        )
        logger.debug("Athena query %s submitted", job.id)
        return await self.wait_for_query(job)

    async def first_column_values(self, *, query_id: str) -> list[str]:
        """Values of the first column of every result row (e.g. SHOW TABLES)."""

        values: list[str] = []
        try:
            athena_client: Any = self._client()
            async with athena_client as athena:
                paginator = athena.get_paginator("get_query_results")
                async for page in paginator.paginate(QueryExecutionId=query_id):
                    for row in (page.get("ResultSet") or {}).get("Rows", []):
                        data = row.get("Data") or []
                        if data and data[0].get("VarCharValue") is not None:
                            values.append(str(data[0]["VarCharValue"]))
        except (ClientError, BotoCoreError) as exc:
            raise AthenaServiceError(f"Failed to read results of query {query_id}") from exc
        return values
