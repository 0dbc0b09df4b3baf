from __future__ import annotations

import asyncio
import logging
import re
import tarfile
import zipfile
import zlib
from dataclasses import dataclass, field
from html.parser import HTMLParser
from pathlib import Path
from typing import Optional
from urllib.parse import parse_qs, urljoin, urlparse

import aiohttp
from aiohttp.abc import AbstractCookieJar
from tqdm import tqdm

from warehouse_setup.models.context import DownloadArtifact
from warehouse_setup.services.errors import SetupError
from warehouse_setup.services.identity_service import ConfigurationError


logger = logging.getLogger(__name__)


class DownloadError(SetupError):
    default_hint = "Check network connectivity and that the file is shared as 'Anyone with the link'."


class EmptyDownloadError(DownloadError):
    pass


class ShareNotAccessible(DownloadError):
    default_hint = "The host refused the download; make sure the file is shared as 'Anyone with the link'."


class DownloadQuotaExceeded(DownloadError):
    default_hint = "The host's download quota for this file is exhausted; wait a few hours or use a copy of the file."


class ConfirmationTokenMissing(DownloadError):
    default_hint = "The host answered with a warning page but no confirmation token; the share is usually not public."


class VerificationError(SetupError):
    default_hint = "The downloaded file is not the expected archive; check the share link and run again."


class HtmlPayloadError(VerificationError):
    pass


class ArchiveIntegrityError(VerificationError):
    default_hint = "The archive is corrupted or truncated; run again to download it from scratch."


ZIP = "application/zip"
GZIP = "application/gzip"
BZIP2 = "application/x-bzip2"
XZ = "application/x-xz"
TAR = "application/x-tar"
HTML = "text/html"
OCTET_STREAM = "application/octet-stream"

TAR_FAMILY = frozenset({TAR, GZIP, BZIP2, XZ})

_DISK_HINT = "Check free disk space and write permissions under SETUP_WORKDIR."

_HTML_PREFIXES = (b"<!doctype html", b"<html", b"<head", b"<body", b"<meta", b"<script", b"<title")


def sniff_content_type(path: Path) -> str:
    """Guess the payload type from its leading bytes, ignoring any HTTP header."""

    with path.open("rb") as fh:
        head = fh.read(512)

    if head.startswith((b"PK\x03\x04", b"PK\x05\x06", b"PK\x07\x08")):
        return ZIP
    if head.startswith(b"\x1f\x8b"):
        return GZIP
    if head.startswith(b"BZh"):
        return BZIP2
    if head.startswith(b"\xfd7zXZ\x00"):
        return XZ
    if len(head) >= 262 and head[257:262] == b"ustar":
        return TAR

    text = head.lstrip(b"\xef\xbb\xbf \t\r\n").lower()
    if text.startswith(_HTML_PREFIXES) or (text.startswith(b"<") and b"<html" in text):
        return HTML
    return OCTET_STREAM


def check_archive_integrity(path: Path, content_type: str) -> None:
    """Walk the archive index (and zip CRCs) without extracting anything."""

    if content_type == ZIP:
        try:
            with zipfile.ZipFile(path) as zf:
                bad_member = zf.testzip()
                empty = not zf.namelist()
        except (zipfile.BadZipFile, OSError, zlib.error) as exc:
            raise ArchiveIntegrityError(f"Zip archive is unreadable: {path.name}") from exc
        if bad_member is not None:
            raise ArchiveIntegrityError(f"Zip archive has a bad CRC for member: {bad_member}")
        if empty:
            raise ArchiveIntegrityError(f"Zip archive is empty: {path.name}")
        return

    if content_type in TAR_FAMILY:
        try:
            with tarfile.open(path, "r:*") as tf:
                members = tf.getmembers()
        except (tarfile.TarError, OSError, EOFError, zlib.error) as exc:
            raise ArchiveIntegrityError(f"Tar archive is unreadable: {path.name}") from exc
        if not members:
            raise ArchiveIntegrityError(f"Tar archive is empty: {path.name}")
        return

    raise ArchiveIntegrityError(f"Unsupported payload type {content_type!r}; expected a zip or tar archive")


def extract_file_id(link: str) -> str:
    """Pull the file id out of a share link (`/file/d/<id>/view` or `?id=<id>`)."""

    match = re.search(r"/d/([A-Za-z0-9_-]+)", link)
    if match:
        return match.group(1)

    ids = parse_qs(urlparse(link).query).get("id")
    if ids and re.fullmatch(r"[A-Za-z0-9_-]+", ids[0]):
        return ids[0]

    raise ConfigurationError(
        f"Could not extract the file id from the share link: {link}",
        hint="Use a link like https://drive.google.com/file/d/<id>/view.",
    )


@dataclass(frozen=True)
class ConfirmRequest:
    url: str
    params: dict[str, str] = field(default_factory=dict)


class _DownloadFormParser(HTMLParser):
    """Collects the action and hidden inputs of the 'download anyway' form."""

    def __init__(self) -> None:
        super().__init__()
        self.action: Optional[str] = None
        self.inputs: dict[str, str] = {}
        self._in_form = False

    def handle_starttag(self, tag: str, attrs: list[tuple[str, Optional[str]]]) -> None:
        values = {name: value or "" for name, value in attrs}
        if tag == "form" and self.action is None:
            if values.get("id") == "download-form" or "download" in values.get("action", ""):
                self.action = values.get("action") or ""
                self._in_form = True
        elif tag == "input" and self._in_form and values.get("type", "").lower() == "hidden":
            name = values.get("name")
            if name:
                self.inputs[name] = values.get("value", "")

    def handle_endtag(self, tag: str) -> None:
        if tag == "form":
            self._in_form = False


class _RetryableStatus(Exception):
    def __init__(self, status: int) -> None:
        super().__init__(f"HTTP {status}")
        self.status = status


class DownloadService:
    """Downloads a publicly shared file, working around interstitial pages.

    Large files on the share host are not served directly: the first GET returns
    an HTML warning ("can't scan this file for viruses", quota notices...). The
    page (or a `download_warning*` cookie) carries a confirmation token; a second
    GET with that token returns the payload. The second response is always taken
    as final and then verified before anyone may use it.
    """

    _CONFIRM_PATTERN = re.compile(r"confirm=([0-9A-Za-z_-]+)")
    _QUOTA_MARKERS = (
        "too many users have viewed or downloaded this file recently",
        "download quota",
    )
    _NOT_ACCESSIBLE_STATUSES = frozenset({401, 403, 404})
    _CHUNK_SIZE = 1024 * 1024

    def __init__(
        self,
        *,
        base_url: str = "https://drive.google.com",
        max_attempts: int = 4,
        backoff_seconds: float = 1.0,
        read_timeout_seconds: float = 300.0,
    ) -> None:
        if max_attempts <= 0:
            raise ValueError("max_attempts must be greater than zero")
        self._base_url = base_url.rstrip("/")
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._timeout = aiohttp.ClientTimeout(total=None, sock_connect=30.0, sock_read=read_timeout_seconds)

    async def fetch(self, *, file_id: str, destination: Path) -> DownloadArtifact:
        """Download `file_id` to `destination` and return the verified artifact."""

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.unlink(missing_ok=True)
        except OSError as exc:
            raise DownloadError(f"Cannot prepare download destination {destination}: {exc}", hint=_DISK_HINT) from exc

        url = f"{self._base_url}/uc"
        params = {"export": "download", "id": file_id}

        # unsafe=True keeps cookies for IP-address hosts too.
        jar = aiohttp.CookieJar(unsafe=True)
        async with aiohttp.ClientSession(cookie_jar=jar, timeout=self._timeout) as http:
            interstitial = await self._get(http, url=url, params=params, destination=destination, accept_html=True)
            if interstitial is not None:
                confirm = self.confirmation_request(html=interstitial, jar=jar, url=url, file_id=file_id)
                logger.info("Share host returned a warning page; retrying with confirmation token")
                await self._get(http, url=confirm.url, params=confirm.params, destination=destination, accept_html=False)

        return self.verify(file_id=file_id, path=destination)

    def confirmation_request(
        self,
        *,
        html: str,
        jar: AbstractCookieJar,
        url: str,
        file_id: str,
    ) -> ConfirmRequest:
        """Build the follow-up request from an interstitial page, or fail."""

        if self._is_quota_page(html):
            raise DownloadQuotaExceeded(f"Download quota exceeded for file {file_id}")

        form = _DownloadFormParser()
        form.feed(html)
        if form.action and "confirm" in form.inputs:
            return ConfirmRequest(url=urljoin(url, form.action), params=dict(form.inputs))

        token: Optional[str] = None
        match = self._CONFIRM_PATTERN.search(html)
        if match:
            token = match.group(1)
        else:
            for cookie in jar:
                if cookie.key.startswith("download_warning") and cookie.value:
                    token = cookie.value
                    break

        if not token:
            raise ConfirmationTokenMissing(f"No confirmation token found for file {file_id}")

        return ConfirmRequest(url=url, params={"export": "download", "confirm": token, "id": file_id})

    def verify(self, *, file_id: str, path: Path) -> DownloadArtifact:
        if not path.exists() or path.stat().st_size == 0:
            raise EmptyDownloadError(f"Downloaded file is empty: {path}")

        content_type = sniff_content_type(path)
        if content_type == HTML:
            text = path.read_text(encoding="utf-8", errors="replace")
            if self._is_quota_page(text):
                raise DownloadQuotaExceeded(f"Download quota exceeded for file {file_id}")
            raise HtmlPayloadError(f"Downloaded file is an HTML page, not an archive: {path}")

        check_archive_integrity(path, content_type)

        size = path.stat().st_size
        logger.info("Download verified: %s (%s, %d bytes)", path, content_type, size)
        return DownloadArtifact(
            source_link_id=file_id,
            local_path=path,
            content_type=content_type,
            size=size,
            verified=True,
        )

    @classmethod
    def _is_quota_page(cls, html: str) -> bool:
        lowered = html.lower()
        return any(marker in lowered for marker in cls._QUOTA_MARKERS)

    async def _get(
        self,
        http: aiohttp.ClientSession,
        *,
        url: str,
        params: dict[str, str],
        destination: Path,
        accept_html: bool,
    ) -> Optional[str]:
        """GET with retries. Returns the page text for an HTML answer when
        `accept_html` is set; otherwise streams the body to `destination`."""

        last_error: Optional[BaseException] = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                async with http.get(url, params=params, allow_redirects=True) as resp:
                    if resp.status in self._NOT_ACCESSIBLE_STATUSES:
                        raise ShareNotAccessible(f"Share host answered HTTP {resp.status} for {url}")
                    if resp.status == 429 or resp.status >= 500:
                        raise _RetryableStatus(resp.status)
                    if resp.status != 200:
                        raise DownloadError(f"Unexpected HTTP {resp.status} from share host")

                    if accept_html and resp.content_type == HTML:
                        return await resp.text(errors="replace")

                    await self._stream_to_file(resp, destination)
                    return None
            except (aiohttp.ClientError, asyncio.TimeoutError, _RetryableStatus) as exc:
                last_error = exc
                if attempt == self._max_attempts:
                    break
                delay = self._backoff_seconds * (2 ** (attempt - 1))
                logger.warning(
                    "Download attempt %d/%d failed (%s); retrying in %.1fs",
                    attempt,
                    self._max_attempts,
                    exc,
                    delay,
                )
                await asyncio.sleep(delay)

        raise DownloadError(f"Download failed after {self._max_attempts} attempts: {last_error}") from last_error

    async def _stream_to_file(self, resp: aiohttp.ClientResponse, destination: Path) -> None:
        total = resp.content_length
        try:
            await self._write_chunks(resp, destination, total)
        except (aiohttp.ClientError, asyncio.TimeoutError):
            raise
        except OSError as exc:
            raise DownloadError(f"Cannot write the download to {destination}: {exc}", hint=_DISK_HINT) from exc

    async def _write_chunks(self, resp: aiohttp.ClientResponse, destination: Path, total: Optional[int]) -> None:
        with destination.open("wb") as fh, tqdm(
            total=total,
            unit="B",
            unit_scale=True,
            desc="Downloading dataset",
            disable=None,
        ) as bar:
            async for chunk in resp.content.iter_chunked(self._CHUNK_SIZE):
                fh.write(chunk)
                bar.update(len(chunk))
