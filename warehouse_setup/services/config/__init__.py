"""Configuration package (Facade).

Re-exports the public configuration objects so callers import from a single,
stable path instead of the defining module:

	from warehouse_setup.services.config import SetupConfig, TPCDS_CATALOG
"""

from warehouse_setup.services.config.setup_config import SetupConfig
from warehouse_setup.services.config.table_catalog import (
	ACCOUNT_ID_PLACEHOLDER,
	REQUIRED_DATASET_DIRS,
	TPCDS_CATALOG,
)

__all__ = ["ACCOUNT_ID_PLACEHOLDER", "REQUIRED_DATASET_DIRS", "SetupConfig", "TPCDS_CATALOG"]
