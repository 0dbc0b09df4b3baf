from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import ClassVar, Optional


@dataclass(frozen=True)
class SetupConfig:
    """Runtime configuration for one setup run.

    Everything has a default matching the course environment, so a bare
    `SetupConfig.from_env()` provisions the standard TPC-DS lab.
    """

    share_link: str = (
        "https://drive.google.com/file/d/1w0ZEj4pogi5HlOBnBrU562Ya0AjL-58Y/view?usp=sharing"
    )
    bucket_prefix: str = "otfs-aula"
    workgroup: str = "otfs-aula-workgroup"
    database: str = "tpcds"
    results_prefix: str = "athena-results/"
    dataset_prefix: str = "datasets/TPC-DS-100-GB/"
    workdir: Path = Path("/tmp/otfs-aula-setup")
    region: Optional[str] = None

    _DEFAULT_POLL_INTERVAL_SECONDS: ClassVar[float] = 2.0
    _DEFAULT_QUERY_TIMEOUT_SECONDS: ClassVar[float] = 600.0
    poll_interval_seconds: float = _DEFAULT_POLL_INTERVAL_SECONDS
    # None means poll until the query reaches a terminal state.
    query_timeout_seconds: Optional[float] = _DEFAULT_QUERY_TIMEOUT_SECONDS

    download_base_url: str = "https://drive.google.com"
    download_max_attempts: int = 4
    download_backoff_seconds: float = 1.0
    metadata_timeout_seconds: float = 2.0
    upload_concurrency: int = 10

    @property
    def dataset_dir_name(self) -> str:
        """Name of the innermost dataset folder, e.g. `TPC-DS-100-GB`."""

        return Path(self.dataset_prefix.strip("/")).name

    @property
    def canonical_subpath(self) -> Path:
        return Path(self.dataset_prefix.strip("/"))

    def with_overrides(self, **changes: object) -> "SetupConfig":
        """Return a copy with the non-None values in `changes` applied."""

        applied = {key: value for key, value in changes.items() if value is not None}
        return replace(self, **applied) if applied else self

    @staticmethod
    def _float_env(name: str, default: float) -> float:
        raw = os.getenv(name)
        if not raw:
            return default
        try:
            return float(raw)
        except ValueError as exc:
            raise ValueError(f"Invalid {name}; must be a number") from exc

    @staticmethod
    def _int_env(name: str, default: int) -> int:
        raw = os.getenv(name)
        if not raw:
            return default
        try:
            value = int(raw)
        except ValueError as exc:
            raise ValueError(f"Invalid {name}; must be an integer") from exc
        if value <= 0:
            raise ValueError(f"Invalid {name}; must be greater than zero")
        return value

    @staticmethod
    def from_env() -> "SetupConfig":
        defaults = SetupConfig()

        timeout = SetupConfig._float_env("ATHENA_QUERY_TIMEOUT_SECONDS", SetupConfig._DEFAULT_QUERY_TIMEOUT_SECONDS)

        return SetupConfig(
            share_link=os.getenv("DATASET_SHARE_LINK") or defaults.share_link,
            workgroup=os.getenv("ATHENA_WORKGROUP") or defaults.workgroup,
            database=os.getenv("ATHENA_DATABASE") or defaults.database,
            results_prefix=os.getenv("ATHENA_RESULTS_PREFIX") or defaults.results_prefix,
            workdir=Path(os.getenv("SETUP_WORKDIR") or defaults.workdir),
            region=os.getenv("SETUP_REGION") or None,
            poll_interval_seconds=SetupConfig._float_env(
                "ATHENA_POLL_INTERVAL_SECONDS", SetupConfig._DEFAULT_POLL_INTERVAL_SECONDS
            ),
            query_timeout_seconds=timeout if timeout > 0 else None,
            download_base_url=(os.getenv("DOWNLOAD_BASE_URL") or defaults.download_base_url).rstrip("/"),
            download_max_attempts=SetupConfig._int_env("DOWNLOAD_MAX_ATTEMPTS", defaults.download_max_attempts),
            metadata_timeout_seconds=SetupConfig._float_env(
                "METADATA_TIMEOUT_SECONDS", defaults.metadata_timeout_seconds
            ),
            upload_concurrency=SetupConfig._int_env("UPLOAD_CONCURRENCY", defaults.upload_concurrency),
        )
