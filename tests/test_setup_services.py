from __future__ import annotations

import pytest

from tests.fakes import FakeAthena, FakeS3, FakeSession
from warehouse_setup.services.athena_service import AthenaService
from warehouse_setup.services.errors import ProvisionError
from warehouse_setup.services.s3_service import S3Service
from warehouse_setup.services.setup.athena_setup_service import AthenaSetupService
from warehouse_setup.services.setup.s3_setup_service import S3SetupService

BUCKET = "otfs-aula-ABC123"
RESULTS = f"s3://{BUCKET}/athena-results/"


def _bucket_setup(fake_s3: FakeS3, region: str = "us-east-2") -> S3SetupService:
    return S3SetupService(s3=S3Service(region_name=region, session=FakeSession(s3=fake_s3)))


def _workgroup_setup(fake_athena: FakeAthena) -> AthenaSetupService:
    athena = AthenaService(region_name="us-east-2", session=FakeSession(athena=fake_athena), poll_interval_seconds=0)
    return AthenaSetupService(athena=athena)


class TestEnsureBucket:
    @pytest.mark.asyncio
    async def test_second_call_is_a_no_op(self, fake_s3: FakeS3) -> None:
        setup = _bucket_setup(fake_s3)

        assert await setup.ensure_bucket(bucket=BUCKET, region="us-east-2") is True
        assert await setup.ensure_bucket(bucket=BUCKET, region="us-east-2") is False

        assert len(fake_s3.create_calls) == 1
        assert BUCKET in fake_s3.buckets

    @pytest.mark.asyncio
    async def test_us_east_1_has_no_location_constraint(self, fake_s3: FakeS3) -> None:
        await _bucket_setup(fake_s3, region="us-east-1").ensure_bucket(bucket=BUCKET, region="us-east-1")

        assert fake_s3.create_calls == [{"Bucket": BUCKET}]

    @pytest.mark.asyncio
    async def test_other_regions_pass_the_location_constraint(self, fake_s3: FakeS3) -> None:
        await _bucket_setup(fake_s3, region="sa-east-1").ensure_bucket(bucket=BUCKET, region="sa-east-1")

        assert fake_s3.create_calls == [
            {"Bucket": BUCKET, "CreateBucketConfiguration": {"LocationConstraint": "sa-east-1"}}
        ]

    @pytest.mark.asyncio
    async def test_create_error_with_reachable_bucket_is_tolerated(self, fake_s3: FakeS3) -> None:
        fake_s3.create_error = "OperationAborted"
        fake_s3.create_error_creates = True

        assert await _bucket_setup(fake_s3).ensure_bucket(bucket=BUCKET, region="us-east-2") is True

    @pytest.mark.asyncio
    async def test_unreachable_bucket_is_a_provision_error(self, fake_s3: FakeS3) -> None:
        fake_s3.create_error = "BucketAlreadyExists"

        with pytest.raises(ProvisionError) as excinfo:
            await _bucket_setup(fake_s3).ensure_bucket(bucket=BUCKET, region="us-east-2")

        assert BUCKET in str(excinfo.value)
        assert "global" in (excinfo.value.hint or "")


class TestEnsureWorkgroup:
    @pytest.mark.asyncio
    async def test_created_with_enforced_result_location(self, fake_athena: FakeAthena) -> None:
        await _workgroup_setup(fake_athena).ensure_workgroup(name="otfs-aula-workgroup", output_location=RESULTS)

        config = fake_athena.workgroups["otfs-aula-workgroup"]
        assert config["ResultConfiguration"] == {"OutputLocation": RESULTS}
        assert config["EnforceWorkGroupConfiguration"] is True
        assert config["PublishCloudWatchMetricsEnabled"] is True

    @pytest.mark.asyncio
    async def test_existing_workgroup_is_converged(self, fake_athena: FakeAthena) -> None:
        fake_athena.workgroups["otfs-aula-workgroup"] = {
            "ResultConfiguration": {"OutputLocation": "s3://someone-else/results/"},
            "EnforceWorkGroupConfiguration": False,
            "PublishCloudWatchMetricsEnabled": False,
        }

        await _workgroup_setup(fake_athena).ensure_workgroup(name="otfs-aula-workgroup", output_location=RESULTS)

        assert fake_athena.workgroups["otfs-aula-workgroup"] == {
            "ResultConfiguration": {"OutputLocation": RESULTS},
            "EnforceWorkGroupConfiguration": True,
            "PublishCloudWatchMetricsEnabled": True,
        }

    @pytest.mark.asyncio
    async def test_running_twice_leaves_one_consistent_workgroup(self, fake_athena: FakeAthena) -> None:
        setup = _workgroup_setup(fake_athena)

        first = await setup.ensure_workgroup(name="otfs-aula-workgroup", output_location=RESULTS)
        second = await setup.ensure_workgroup(name="otfs-aula-workgroup", output_location=RESULTS)

        assert first == second
        assert list(fake_athena.workgroups) == ["otfs-aula-workgroup"]

    @pytest.mark.asyncio
    async def test_concurrently_created_workgroup_is_updated(self, fake_athena: FakeAthena) -> None:
        fake_athena.create_wg_error = "InvalidRequestException"
        fake_athena.create_wg_error_creates = True

        await _workgroup_setup(fake_athena).ensure_workgroup(name="otfs-aula-workgroup", output_location=RESULTS)

        config = fake_athena.workgroups["otfs-aula-workgroup"]
        assert config["ResultConfiguration"] == {"OutputLocation": RESULTS}

    @pytest.mark.asyncio
    async def test_unreachable_workgroup_is_a_provision_error(self, fake_athena: FakeAthena) -> None:
        fake_athena.create_wg_error = "AccessDeniedException"

        with pytest.raises(ProvisionError):
            await _workgroup_setup(fake_athena).ensure_workgroup(name="otfs-aula-workgroup", output_location=RESULTS)
