from __future__ import annotations

import asyncio
import inspect
import json
import logging
import os
from typing import Any, Optional

import aioboto3
import aiohttp
import botocore.session
from botocore.exceptions import BotoCoreError, ClientError, ProfileNotFound

from warehouse_setup.services.errors import SetupError


logger = logging.getLogger(__name__)


class ConfigurationError(SetupError):
    default_hint = "Set AWS_DEFAULT_REGION (or `aws configure set region <region>`) and check your AWS credentials."


class IdentityService:
    """Resolves the execution region and the caller's account id.

    Region sources, first non-empty wins:
    1) explicit value (CLI flag / SETUP_REGION)
    2) the region configured in the local AWS profile
    3) AWS_REGION / AWS_DEFAULT_REGION
    4) EC2 instance metadata (IMDSv2 token first, then IMDSv1)
    """

    _IMDS_BASE_URL = "http://169.254.169.254"
    _IMDS_TOKEN_TTL_SECONDS = 60

    def __init__(
        self,
        *,
        session: Optional[Any] = None,
        metadata_timeout_seconds: float = 2.0,
        metadata_base_url: str = _IMDS_BASE_URL,
    ) -> None:
        self._session = session or aioboto3.Session()
        self._metadata_timeout = aiohttp.ClientTimeout(total=metadata_timeout_seconds)
        self._metadata_base_url = metadata_base_url.rstrip("/")

    @staticmethod
    def configured_region() -> Optional[str]:
        try:
            scoped = botocore.session.get_session().get_scoped_config()
        except ProfileNotFound:
            return None
        region = (scoped.get("region") or "").strip()
        return region or None

    @staticmethod
    def environment_region() -> Optional[str]:
        region = (os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION") or "").strip()
        return region or None

    async def has_credentials(self) -> bool:
        # aioboto3 resolves the provider chain asynchronously; plain sessions answer directly.
        credentials = self._session.get_credentials()
        if inspect.isawaitable(credentials):
            credentials = await credentials
        return credentials is not None

    async def metadata_region(self) -> Optional[str]:
        """Ask the instance metadata service for the region; None when unreachable."""

        document_url = f"{self._metadata_base_url}/latest/dynamic/instance-identity/document"
        try:
            async with aiohttp.ClientSession(timeout=self._metadata_timeout) as http:
                token = await self._metadata_token(http)
                headers = {"X-aws-ec2-metadata-token": token} if token else {}
                async with http.get(document_url, headers=headers) as resp:
                    if resp.status != 200:
                        logger.debug("Instance metadata document returned HTTP %s", resp.status)
                        return None
                    payload = await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.debug("Instance metadata unreachable: %s", exc)
            return None

        try:
            region = json.loads(payload).get("region")
        except (ValueError, AttributeError):
            return None
        return region.strip() if isinstance(region, str) and region.strip() else None

    async def _metadata_token(self, http: aiohttp.ClientSession) -> Optional[str]:
        try:
            async with http.put(
                f"{self._metadata_base_url}/latest/api/token",
                headers={"X-aws-ec2-metadata-token-ttl-seconds": str(self._IMDS_TOKEN_TTL_SECONDS)},
            ) as resp:
                if resp.status != 200:
                    return None
                token = (await resp.text()).strip()
                return token or None
        except (aiohttp.ClientError, asyncio.TimeoutError):
            # IMDSv1-only hosts (and some containers) refuse the token call.
            return None

    async def resolve_region(self, explicit: Optional[str] = None) -> str:
        if explicit and explicit.strip():
            return explicit.strip()

        region = self.configured_region() or self.environment_region()
        if region:
            return region

        region = await self.metadata_region()
        if region:
            logger.info("Region detected from instance metadata: %s", region)
            return region

        raise ConfigurationError("Could not determine the AWS region")

    async def caller_account_id(self, *, region: str) -> str:
        try:
            async with self._session.client("sts", region_name=region) as sts:
                response = await sts.get_caller_identity()
        except (ClientError, BotoCoreError) as exc:
            raise ConfigurationError(
                "Could not resolve the AWS account id",
                hint="Check that your credentials allow sts:GetCallerIdentity.",
            ) from exc

        account_id = str(response.get("Account") or "").strip()
        if not account_id or account_id == "None":
            raise ConfigurationError(
                "STS returned no account id",
                hint="Check that your credentials allow sts:GetCallerIdentity.",
            )
        return account_id
