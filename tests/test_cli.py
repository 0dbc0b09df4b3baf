from __future__ import annotations

from typing import Any

import pytest
from typer.testing import CliRunner

from warehouse_setup import main
from warehouse_setup.models.context import SetupReport
from warehouse_setup.services.config import SetupConfig
from warehouse_setup.services.errors import SetupError

runner = CliRunner()

REPORT = SetupReport(
    bucket_name="otfs-aula-ABC123",
    workgroup="otfs-aula-workgroup",
    result_location="s3://otfs-aula-ABC123/athena-results/",
    dataset_location="s3://otfs-aula-ABC123/datasets/TPC-DS-100-GB/",
    database="tpcds",
    tables=["customer", "web_sales"],
)


class StubOrchestrator:
    def __init__(self, outcome: Any) -> None:
        self._outcome = outcome

    async def run(self) -> SetupReport:
        if isinstance(self._outcome, Exception):
            raise self._outcome
        return self._outcome


@pytest.fixture
def captured(monkeypatch: pytest.MonkeyPatch) -> dict[str, Any]:
    monkeypatch.delenv("ATHENA_QUERY_TIMEOUT_SECONDS", raising=False)
    monkeypatch.delenv("SETUP_REGION", raising=False)
    state: dict[str, Any] = {"outcome": REPORT}

    def _factory(config: SetupConfig, *, progress: Any = None) -> StubOrchestrator:
        state["config"] = config
        state["progress"] = progress
        return StubOrchestrator(state["outcome"])

    monkeypatch.setattr(main, "get_setup_orchestrator", _factory)
    return state


class TestRunCommand:
    def test_success_prints_the_summary(self, captured: dict[str, Any]) -> None:
        result = runner.invoke(main.app, ["run", "--region", "us-east-2", "--query-timeout", "0"])

        assert result.exit_code == 0, result.output
        assert "Bucket: s3://otfs-aula-ABC123" in result.output
        assert "Tables: customer, web_sales" in result.output
        assert captured["config"].region == "us-east-2"
        assert captured["config"].query_timeout_seconds is None

    def test_failure_names_the_step_and_hint(self, captured: dict[str, Any]) -> None:
        captured["outcome"] = SetupError("bucket is gone", hint="Check IAM permissions.", step="Creating S3 bucket")

        result = runner.invoke(main.app, ["run"])

        assert result.exit_code == 1
        assert "ERROR [Creating S3 bucket]: bucket is gone" in result.output
        assert "Hint: Check IAM permissions." in result.output

    def test_invalid_environment_fails_fast(self, captured: dict[str, Any], monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DOWNLOAD_MAX_ATTEMPTS", "lots")

        result = runner.invoke(main.app, ["run"])

        assert result.exit_code == 1
        assert "DOWNLOAD_MAX_ATTEMPTS" in result.output
        assert "config" not in captured


class TestTablesCommand:
    def test_prints_resolved_ddl(self) -> None:
        result = runner.invoke(main.app, ["tables", "--account-id", "ABC123"])

        assert result.exit_code == 0, result.output
        assert result.output.count("CREATE EXTERNAL TABLE IF NOT EXISTS") == 6
        assert "s3://otfs-aula-ABC123/datasets/TPC-DS-100-GB/prepared_web_sales" in result.output
        assert "$accountID" not in result.output

    def test_account_id_is_required(self) -> None:
        result = runner.invoke(main.app, ["tables"])

        assert result.exit_code != 0
