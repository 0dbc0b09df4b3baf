from __future__ import annotations

import io
import tarfile
import zipfile
from typing import Callable

import pytest

from tests.fakes import FakeAthena, FakeS3, FakeSession, FakeSTS


@pytest.fixture
def fake_s3() -> FakeS3:
    return FakeS3()


@pytest.fixture
def fake_athena() -> FakeAthena:
    return FakeAthena()


@pytest.fixture
def fake_session(fake_s3: FakeS3, fake_athena: FakeAthena) -> FakeSession:
    return FakeSession(s3=fake_s3, athena=fake_athena, sts=FakeSTS())


@pytest.fixture
def make_zip() -> Callable[[dict[str, bytes]], bytes]:
    def _make(files: dict[str, bytes]) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for name, data in files.items():
                zf.writestr(name, data)
        return buffer.getvalue()

    return _make


@pytest.fixture
def make_tar_gz() -> Callable[[dict[str, bytes]], bytes]:
    def _make(files: dict[str, bytes]) -> bytes:
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w:gz") as tf:
            for name, data in files.items():
                info = tarfile.TarInfo(name)
                info.size = len(data)
                tf.addfile(info, io.BytesIO(data))
        return buffer.getvalue()

    return _make


@pytest.fixture
def dataset_files() -> dict[str, bytes]:
    """A minimal dataset in the canonical layout."""

    return {
        "datasets/TPC-DS-100-GB/prepared_customer/part-00000.parquet": b"PAR1customer",
        "datasets/TPC-DS-100-GB/prepared_web_sales/part-00000.parquet": b"PAR1web_sales",
        "datasets/TPC-DS-100-GB/prepared_web_sales/part-00001.parquet": b"PAR1web_sales_2",
    }
