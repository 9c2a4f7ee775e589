from __future__ import annotations

import logging
import os
import shutil
import tarfile
import zipfile
from pathlib import Path

from ..errors import StructuralError

logger = logging.getLogger(__name__)


def _extract_zip(archive: Path, dest: Path) -> None:
    root = dest.resolve()
    with zipfile.ZipFile(archive) as zf:
        for info in zf.infolist():
            if not (root / info.filename).resolve().is_relative_to(root):
                raise StructuralError(f"Refusing to extract {info.filename!r} outside {dest}")
            written = zf.extract(info, dest)
            # zipfile drops unix permissions; sdkmanager and flutter need +x.
            mode = (info.external_attr >> 16) & 0o777
            if mode and not info.is_dir():
                os.chmod(written, mode)


def _extract_tar(archive: Path, dest: Path) -> None:
    with tarfile.open(archive) as tf:
        if hasattr(tarfile, "data_filter"):
            tf.extractall(dest, filter="tar")
        else:
            tf.extractall(dest)


def extract(archive: Path, dest: Path) -> Path:
    """Extract a .zip, .tar.gz or .tar.xz archive into dest (created fresh)."""

    archive = Path(archive)
    dest = Path(dest)
    if dest.exists():
        shutil.rmtree(dest)
    dest.mkdir(parents=True)

    logger.info("Extracting %s -> %s", archive.name, dest)
    name = archive.name.lower()
    if name.endswith(".zip"):
        _extract_zip(archive, dest)
    elif name.endswith((".tar.gz", ".tgz", ".tar.xz", ".tar")):
        _extract_tar(archive, dest)
    else:
        raise ValueError(f"Unsupported archive type: {archive.name}")
    return dest


def single_root(extracted: Path) -> Path:
    """Return the one top-level directory of an extracted archive."""

    entries = [p for p in extracted.iterdir() if not p.name.startswith(".")]
    dirs = [p for p in entries if p.is_dir()]
    if len(entries) == 1 and len(dirs) == 1:
        return dirs[0]
    raise StructuralError(f"Expected a single top-level directory in {extracted}, found {len(entries)} entries")


def install_tree(source: Path, target: Path) -> Path:
    """Move an extracted tree into its final location, replacing any previous copy."""

    target.parent.mkdir(parents=True, exist_ok=True)
    if target.exists():
        logger.info("Replacing existing %s", target)
        shutil.rmtree(target)
    shutil.move(str(source), str(target))
    return target
