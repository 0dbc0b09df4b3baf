from __future__ import annotations

import logging
import shutil
import tarfile
import zipfile
import zlib
from pathlib import Path, PurePosixPath
from typing import Sequence

from warehouse_setup.models.context import DownloadArtifact, ExtractedTree
from warehouse_setup.services.download_service import (
    TAR_FAMILY,
    ZIP,
    VerificationError,
    sniff_content_type,
)
from warehouse_setup.services.errors import SetupError


logger = logging.getLogger(__name__)


class LayoutError(SetupError):
    default_hint = "The archive does not have the expected dataset layout; check that the right file is shared."


class MissingDatasetDirError(LayoutError):
    pass


class EmptyDatasetDirError(LayoutError):
    pass


class ArchiveService:
    """Extracts the verified dataset archive and normalizes its layout.

    The bucket expects `<canonical_subpath>/<required dir>/...`, e.g.
    `datasets/TPC-DS-100-GB/prepared_customer/part-0.parquet`. Archives built by
    hand sometimes omit the outer `datasets/` folder; that single case is fixed
    by moving the inner folder into place. Anything else is rejected rather than
    guessed at, so misplaced data never reaches the bucket.
    """

    _EXTRACT_HINT = "Check free disk space and write permissions under SETUP_WORKDIR, then download the archive again."

    def __init__(self, *, canonical_subpath: Path, required_dirs: Sequence[str]) -> None:
        if not canonical_subpath.parts:
            raise ValueError("canonical_subpath must not be empty")
        self._canonical_subpath = canonical_subpath
        self._required_dirs = tuple(required_dirs)

    def prepare(self, artifact: DownloadArtifact, *, scratch_dir: Path) -> ExtractedTree:
        root = self.extract(artifact, scratch_dir=scratch_dir)
        tree = self.normalize(root)
        self.validate(tree)
        return tree

    def extract(self, artifact: DownloadArtifact, *, scratch_dir: Path) -> Path:
        """Extract into a fresh `scratch_dir`; stale content from older runs is removed first."""

        if not artifact.verified:
            raise VerificationError(f"Refusing to extract an unverified download: {artifact.local_path}")

        content_type = artifact.content_type or sniff_content_type(artifact.local_path)
        if content_type != ZIP and content_type not in TAR_FAMILY:
            raise VerificationError(f"Unsupported archive type: {content_type}")

        try:
            if scratch_dir.exists():
                shutil.rmtree(scratch_dir)
            scratch_dir.mkdir(parents=True)

            if content_type == ZIP:
                with zipfile.ZipFile(artifact.local_path) as zf:
                    self._check_member_names(zf.namelist())
                    zf.extractall(scratch_dir)
            else:
                with tarfile.open(artifact.local_path, "r:*") as tf:
                    members = tf.getmembers()
                    self._check_member_names([m.name for m in members])
                    for member in members:
                        if member.issym() or member.islnk() or member.isdev():
                            raise LayoutError(f"Archive contains a link or device entry: {member.name}")
                    if hasattr(tarfile, "data_filter"):
                        tf.extractall(scratch_dir, filter="data")
                    else:
                        tf.extractall(scratch_dir)
        except (OSError, EOFError, zlib.error, zipfile.BadZipFile, tarfile.TarError) as exc:
            raise LayoutError(
                f"Could not extract {artifact.local_path.name} into {scratch_dir}: {exc}",
                hint=self._EXTRACT_HINT,
            ) from exc

        logger.info("Archive extracted to %s", scratch_dir)
        return scratch_dir

    @staticmethod
    def _check_member_names(names: Sequence[str]) -> None:
        for name in names:
            path = PurePosixPath(name.replace("\\", "/"))
            if path.is_absolute() or ".." in path.parts:
                raise LayoutError(f"Archive member escapes the extraction directory: {name}")

    def normalize(self, root: Path) -> ExtractedTree:
        canonical = root / self._canonical_subpath
        if canonical.is_dir():
            return ExtractedTree(root_path=root, canonical_subpath=self._canonical_subpath)

        inner_name = self._canonical_subpath.name
        inner = root / inner_name
        if len(self._canonical_subpath.parts) > 1 and inner.is_dir():
            try:
                canonical.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(inner), str(canonical))
            except OSError as exc:
                raise LayoutError(
                    f"Could not move {inner_name} under {canonical.parent}: {exc}",
                    hint=self._EXTRACT_HINT,
                ) from exc
            logger.info("Moved %s under %s", inner_name, canonical.parent.relative_to(root).as_posix())
            return ExtractedTree(root_path=root, canonical_subpath=self._canonical_subpath)

        found = sorted(p.name for p in root.iterdir())
        raise LayoutError(
            f"Expected '{self._canonical_subpath.as_posix()}/' (or '{inner_name}/') in the archive; found: {found}"
        )

    def validate(self, tree: ExtractedTree) -> None:
        canonical = tree.canonical_path
        for name in self._required_dirs:
            directory = canonical / name
            if not directory.is_dir():
                raise MissingDatasetDirError(f"Required dataset folder is missing: {directory}")
            if not any(p.is_file() for p in directory.rglob("*")):
                raise EmptyDatasetDirError(f"Required dataset folder is empty: {directory}")
