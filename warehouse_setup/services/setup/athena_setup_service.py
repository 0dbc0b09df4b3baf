from __future__ import annotations

import logging

from warehouse_setup.services.athena_service import AthenaService, AthenaServiceError, WorkGroupConfig
from warehouse_setup.services.errors import ProvisionError


logger = logging.getLogger(__name__)


class AthenaSetupService:
    """Converges the Athena workgroup to its declared configuration.

    An existing workgroup is always updated, so a rerun repairs a workgroup
    that was edited by hand (different result location, enforcement off...).
    """

    def __init__(self, *, athena: AthenaService) -> None:
        self._athena = athena

    async def ensure_workgroup(self, *, name: str, output_location: str) -> WorkGroupConfig:
        config = WorkGroupConfig(output_location=output_location)

        if await self._athena.get_workgroup(name=name) is not None:
            logger.info("WorkGroup already exists: %s (updating result configuration)", name)
            await self._athena.update_workgroup(name=name, config=config)
            return config

        logger.info("Creating WorkGroup: %s", name)
        try:
            await self._athena.create_workgroup(name=name, config=config)
            return config
        except AthenaServiceError as exc:
            logger.warning("WorkGroup creation failed (%s); checking whether it exists anyway", exc.__cause__ or exc)

        if await self._athena.get_workgroup(name=name) is None:
            raise ProvisionError(f"Could not create or access Athena workgroup {name}")

        # Created concurrently with a configuration we did not choose.
        await self._athena.update_workgroup(name=name, config=config)
        return config
