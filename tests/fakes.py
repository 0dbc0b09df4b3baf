"""In-memory stand-ins for the AWS clients.

The fakes mimic the slice of the aioboto3 client surface the services use:
`session.client(name, region_name=...)` returns an async context manager, and
paginators yield pages through `async for`.
"""

from __future__ import annotations

import hashlib
import re
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from botocore.exceptions import ClientError


def client_error(code: str, operation: str, message: str = "") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message or code}}, operation)


class _ClientContext:
    def __init__(self, client: Any) -> None:
        self._client = client

    async def __aenter__(self) -> Any:
        return self._client

    async def __aexit__(self, *exc_info: Any) -> bool:
        return False


class FakePaginator:
    def __init__(self, pages: Callable[..., Iterable[dict[str, Any]]]) -> None:
        self._pages = pages

    def paginate(self, **kwargs: Any) -> Any:
        pages = self._pages

        async def _iterate() -> Any:
            for page in pages(**kwargs):
                yield page

        return _iterate()


class FakeSession:
    def __init__(self, **clients: Any) -> None:
        self.clients = clients
        self.client_calls: list[tuple[str, Optional[str]]] = []
        self.credentials: Optional[object] = object()

    def client(self, service_name: str, region_name: Optional[str] = None) -> _ClientContext:
        self.client_calls.append((service_name, region_name))
        return _ClientContext(self.clients[service_name])

    async def get_credentials(self) -> Optional[object]:
        return self.credentials


# -----------------
# S3
# -----------------


class FakeS3:
    def __init__(self, buckets: Iterable[str] = ()) -> None:
        self.buckets: dict[str, dict[str, bytes]] = {name: {} for name in buckets}
        self.create_calls: list[dict[str, Any]] = []
        self.create_error: Optional[str] = None
        # Simulates a bucket that appears even though CreateBucket reported an error.
        self.create_error_creates = False
        self.upload_failures: set[str] = set()
        self.uploaded: list[str] = []
        self.deleted: list[str] = []
        self.page_size = 2

    def put(self, bucket: str, key: str, data: bytes) -> None:
        self.buckets.setdefault(bucket, {})[key] = data

    async def head_bucket(self, Bucket: str) -> dict[str, Any]:
        if Bucket not in self.buckets:
            raise client_error("404", "HeadBucket", "Not Found")
        return {}

    async def create_bucket(self, **kwargs: Any) -> dict[str, Any]:
        self.create_calls.append(kwargs)
        bucket = kwargs["Bucket"]
        if self.create_error:
            if self.create_error_creates:
                self.buckets.setdefault(bucket, {})
            raise client_error(self.create_error, "CreateBucket")
        if bucket in self.buckets:
            raise client_error("BucketAlreadyOwnedByYou", "CreateBucket")
        self.buckets[bucket] = {}
        return {"Location": f"/{bucket}"}

    async def upload_file(self, Filename: str, Bucket: str, Key: str) -> None:
        if Key in self.upload_failures:
            raise client_error("AccessDenied", "PutObject")
        self.buckets[Bucket][Key] = Path(Filename).read_bytes()
        self.uploaded.append(Key)

    def get_paginator(self, name: str) -> FakePaginator:
        assert name == "list_objects_v2"
        return FakePaginator(self._list_pages)

    def _list_pages(self, *, Bucket: str, Prefix: str = "") -> Iterable[dict[str, Any]]:
        if Bucket not in self.buckets:
            raise client_error("NoSuchBucket", "ListObjectsV2")
        objects = self.buckets[Bucket]
        contents = [
            {"Key": key, "Size": len(objects[key]), "ETag": f'"{hashlib.md5(objects[key]).hexdigest()}"'}
            for key in sorted(objects)
            if key.startswith(Prefix)
        ]
        if not contents:
            yield {"KeyCount": 0}
            return
        for start in range(0, len(contents), self.page_size):
            batch = contents[start : start + self.page_size]
            yield {"KeyCount": len(batch), "Contents": batch}

    async def delete_objects(self, Bucket: str, Delete: dict[str, Any]) -> dict[str, Any]:
        for obj in Delete["Objects"]:
            self.buckets[Bucket].pop(obj["Key"], None)
            self.deleted.append(obj["Key"])
        return {}


# -----------------
# Athena
# -----------------

_CREATE_DATABASE = re.compile(r"^\s*CREATE\s+DATABASE\s+(IF\s+NOT\s+EXISTS\s+)?`?(\w+)`?", re.IGNORECASE)
_CREATE_TABLE = re.compile(r"^\s*CREATE\s+EXTERNAL\s+TABLE\s+(IF\s+NOT\s+EXISTS\s+)?`?(\w+)`?", re.IGNORECASE)


class FakeAthena:
    """In-memory Athena: workgroups, scripted query states and a tiny DDL catalog.

    A query's state sequence is taken from `scripts` (first in, first out) or
    computed from the statement. The last state of a sequence repeats forever.
    """

    def __init__(self) -> None:
        self.workgroups: dict[str, dict[str, Any]] = {}
        self.databases: dict[str, set[str]] = {}
        self.submitted: list[dict[str, Any]] = []
        self.scripts: list[list[str]] = []
        self.script_reason: Optional[str] = None
        self.fail_statements: dict[str, str] = {}
        self.reject_submission = False
        self.return_no_id = False
        self.create_wg_error: Optional[str] = None
        self.create_wg_error_creates = False
        self.polls: dict[str, int] = {}
        self._states: dict[str, list[str]] = {}
        self._reasons: dict[str, Optional[str]] = {}
        self._results: dict[str, list[str]] = {}

    # Workgroups

    async def get_work_group(self, WorkGroup: str) -> dict[str, Any]:
        if WorkGroup not in self.workgroups:
            raise client_error("InvalidRequestException", "GetWorkGroup", f"WorkGroup {WorkGroup} is not found.")
        return {"WorkGroup": {"Name": WorkGroup, "State": "ENABLED", "Configuration": self.workgroups[WorkGroup]}}

    async def create_work_group(self, Name: str, Configuration: dict[str, Any]) -> dict[str, Any]:
        if self.create_wg_error:
            if self.create_wg_error_creates:
                self.workgroups.setdefault(Name, {"ResultConfiguration": {"OutputLocation": "s3://elsewhere/"}})
            raise client_error(self.create_wg_error, "CreateWorkGroup")
        if Name in self.workgroups:
            raise client_error("InvalidRequestException", "CreateWorkGroup", "WorkGroup is already created")
        self.workgroups[Name] = dict(Configuration)
        return {}

    async def update_work_group(self, WorkGroup: str, ConfigurationUpdates: dict[str, Any]) -> dict[str, Any]:
        current = self.workgroups[WorkGroup]
        for key, value in ConfigurationUpdates.items():
            if key == "ResultConfigurationUpdates":
                current["ResultConfiguration"] = dict(value)
            else:
                current[key] = value
        return {}

    # Queries

    async def start_query_execution(self, **kwargs: Any) -> dict[str, Any]:
        if self.reject_submission:
            raise client_error("InvalidRequestException", "StartQueryExecution", "Queue is full")
        self.submitted.append(kwargs)
        if self.return_no_id:
            return {}

        query_id = f"q-{len(self.submitted)}"
        statement = kwargs["QueryString"]
        database = (kwargs.get("QueryExecutionContext") or {}).get("Database")

        if self.scripts:
            self._states[query_id] = list(self.scripts.pop(0))
            self._reasons[query_id] = self.script_reason
        else:
            reason = self._run_statement(query_id, statement, database)
            self._states[query_id] = ["RUNNING", "FAILED" if reason else "SUCCEEDED"]
            self._reasons[query_id] = reason
        return {"QueryExecutionId": query_id}

    def _run_statement(self, query_id: str, statement: str, database: Optional[str]) -> Optional[str]:
        for prefix, reason in self.fail_statements.items():
            if statement.startswith(prefix):
                return reason

        match = _CREATE_DATABASE.match(statement)
        if match:
            if match.group(2) in self.databases and not match.group(1):
                return f"Database {match.group(2)} already exists"
            self.databases.setdefault(match.group(2), set())
            return None

        match = _CREATE_TABLE.match(statement)
        if match:
            if database not in self.databases:
                return f"Database {database} does not exist"
            tables = self.databases[database]
            if match.group(2) in tables and not match.group(1):
                return f"AlreadyExistsException: Table {match.group(2)} already exists"
            tables.add(match.group(2))
            return None

        if statement.strip().upper() == "SHOW TABLES":
            self._results[query_id] = sorted(self.databases.get(database or "", set()))
        return None

    async def get_query_execution(self, QueryExecutionId: str) -> dict[str, Any]:
        self.polls[QueryExecutionId] = self.polls.get(QueryExecutionId, 0) + 1
        states = self._states[QueryExecutionId]
        state = states.pop(0) if len(states) > 1 else states[0]
        status: dict[str, Any] = {"State": state}
        if state not in ("QUEUED", "RUNNING") and self._reasons.get(QueryExecutionId):
            status["StateChangeReason"] = self._reasons[QueryExecutionId]
        return {"QueryExecution": {"QueryExecutionId": QueryExecutionId, "Status": status}}

    def get_paginator(self, name: str) -> FakePaginator:
        assert name == "get_query_results"
        return FakePaginator(self._result_pages)

    def _result_pages(self, *, QueryExecutionId: str) -> Iterable[dict[str, Any]]:
        rows = [{"Data": [{"VarCharValue": value}]} for value in self._results.get(QueryExecutionId, [])]
        for start in range(0, max(len(rows), 1), 2):
            yield {"ResultSet": {"Rows": rows[start : start + 2]}}

    @property
    def statements(self) -> list[str]:
        return [call["QueryString"] for call in self.submitted]


# -----------------
# STS
# -----------------


class FakeSTS:
    def __init__(self, account: Optional[str] = "ABC123", error: Optional[str] = None) -> None:
        self.account = account
        self.error = error

    async def get_caller_identity(self) -> dict[str, Any]:
        if self.error:
            raise client_error(self.error, "GetCallerIdentity")
        return {"Account": self.account, "Arn": "arn:aws:iam::ABC123:user/student", "UserId": "AIDA"}
