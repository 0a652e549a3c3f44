"""Manifest and archive generation for a finished framework tree.

The manifest is the lexicographically sorted list of every regular file in
the tree, written *into* the tree before archiving, so it always lists
itself.  Both archives are built from exactly the manifest's entries, which
keeps the manifest, the zip and the tarball in agreement on the file set.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
import tarfile
import zipfile
from dataclasses import dataclass
from pathlib import Path

from chronoforge.config import RunConfig
from chronoforge.errors import PackagingError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Manifest:
    """Sorted archive-relative paths (``<FRAMEWORK_DIR_NAME>/<path>``)."""

    path: Path
    entries: tuple[str, ...]

    def __len__(self) -> int:
        return len(self.entries)


@dataclass(frozen=True)
class Artifact:
    """One archive on disk.  Never mutated after creation."""

    path: Path
    format: str
    sha256: str
    size: int


@dataclass(frozen=True)
class PackageResult:
    manifest: Manifest
    zip: Artifact
    tar: Artifact

    @property
    def artifacts(self) -> list[Artifact]:
        return [self.zip, self.tar]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def collect_files(tree: Path) -> list[str]:
    """Return every regular file under *tree*, archive-relative and sorted.

    Paths are prefixed with the tree's own directory name so that archives
    unpack into a single top-level folder.
    """
    base = tree.parent
    files = [
        path.relative_to(base).as_posix()
        for path in tree.rglob("*")
        if path.is_file() and not path.is_symlink()
    ]
    return sorted(files)


def sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1 << 16), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _write_zip(base: Path, entries: tuple[str, ...], target: Path) -> None:
    with zipfile.ZipFile(
        target, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9
    ) as archive:
        for entry in entries:
            archive.write(base / entry, arcname=entry)


def _write_tar(base: Path, entries: tuple[str, ...], target: Path) -> None:
    with tarfile.open(target, "w:gz") as archive:
        for entry in entries:
            archive.add(base / entry, arcname=entry, recursive=False)


# ---------------------------------------------------------------------------
# Packager
# ---------------------------------------------------------------------------


class Packager:
    """Writes the manifest and both archive formats for a framework tree."""

    def __init__(self, config: RunConfig) -> None:
        self.config = config

    async def package(self, tree: Path) -> PackageResult:
        """Capture the manifest and emit ``.zip`` and ``.tar.gz`` artifacts.

        Raises:
            PackagingError: On any I/O or archive failure.
        """
        try:
            manifest = await asyncio.to_thread(self.write_manifest, tree)
            zip_artifact = await asyncio.to_thread(
                self._build, tree, manifest, "zip", _write_zip
            )
            tar_artifact = await asyncio.to_thread(
                self._build, tree, manifest, "tar.gz", _write_tar
            )
        except (OSError, zipfile.BadZipFile, tarfile.TarError) as exc:
            raise PackagingError(f"Packaging {tree.name} failed: {exc}") from exc

        logger.info(
            "Artifacts → %s/%s.*", self.config.artifacts_dir, self.config.artifact_basename
        )
        return PackageResult(manifest=manifest, zip=zip_artifact, tar=tar_artifact)

    def write_manifest(self, tree: Path) -> Manifest:
        """Write the sorted file list (including itself) into *tree*."""
        manifest_path = tree / self.config.manifest_name
        own_entry = manifest_path.relative_to(tree.parent).as_posix()
        entries = set(collect_files(tree))
        entries.add(own_entry)
        ordered = tuple(sorted(entries))
        manifest_path.write_text("\n".join(ordered) + "\n", encoding="utf-8")
        logger.info("Manifest lists %d files", len(ordered))
        return Manifest(path=manifest_path, entries=ordered)

    def _build(self, tree: Path, manifest: Manifest, fmt: str, writer) -> Artifact:
        target = self.config.artifacts_dir / f"{self.config.artifact_basename}.{fmt}"
        partial = target.with_name(target.name + ".partial")
        if target.exists():
            logger.warning("Replacing existing artifact %s", target.name)
        try:
            writer(tree.parent, manifest.entries, partial)
            os.replace(partial, target)
        finally:
            partial.unlink(missing_ok=True)
        return Artifact(
            path=target,
            format=fmt,
            sha256=sha256_file(target),
            size=target.stat().st_size,
        )
