"""
Tests for archive extraction and tree installation.
"""

from __future__ import annotations

import io
import os
import stat
import sys
import tarfile
import zipfile
from pathlib import Path

import pytest

from mobiledev_setup.errors import StructuralError
from mobiledev_setup.lib.archive import extract, install_tree, single_root


def make_zip(path: Path, entries) -> Path:
    with zipfile.ZipFile(path, "w") as zf:
        for name, data, mode in entries:
            info = zipfile.ZipInfo(name)
            info.external_attr = (mode & 0xFFFF) << 16
            zf.writestr(info, data)
    return path


def make_tar(path: Path, entries) -> Path:
    with tarfile.open(path, "w:gz") as tf:
        for name, data in entries:
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o755
            tf.addfile(info, io.BytesIO(data))
    return path


@pytest.mark.skipif(sys.platform == "win32", reason="posix permissions")
def test_zip_keeps_executable_bit(tmp_path: Path):
    archive = make_zip(
        tmp_path / "tools.zip",
        [
            ("cmdline-tools/bin/sdkmanager", b"#!/bin/sh\n", 0o100755),
            ("cmdline-tools/NOTICE.txt", b"notice", 0o100644),
        ],
    )
    out = extract(archive, tmp_path / "out")
    tool = out / "cmdline-tools" / "bin" / "sdkmanager"
    assert tool.read_bytes() == b"#!/bin/sh\n"
    assert os.stat(tool).st_mode & stat.S_IXUSR
    assert not os.stat(out / "cmdline-tools" / "NOTICE.txt").st_mode & stat.S_IXUSR


def test_zip_path_traversal_rejected(tmp_path: Path):
    archive = make_zip(tmp_path / "evil.zip", [("../escape.txt", b"x", 0o100644)])
    with pytest.raises(StructuralError, match="outside"):
        extract(archive, tmp_path / "out")
    assert not (tmp_path / "escape.txt").exists()


def test_zip_sibling_with_common_prefix_rejected(tmp_path: Path):
    archive = make_zip(tmp_path / "evil.zip", [("../out_evil/x.txt", b"x", 0o100644)])
    with pytest.raises(StructuralError, match="outside"):
        extract(archive, tmp_path / "out")
    assert not (tmp_path / "out_evil").exists()


def test_tar_extraction(tmp_path: Path):
    archive = make_tar(tmp_path / "jdk.tar.gz", [("jdk-17.0.12+7/bin/java", b"java")])
    out = extract(archive, tmp_path / "out")
    assert (single_root(out) / "bin" / "java").read_bytes() == b"java"


def test_extract_replaces_previous_contents(tmp_path: Path):
    dest = tmp_path / "out"
    dest.mkdir()
    (dest / "leftover").write_text("old")
    archive = make_zip(tmp_path / "a.zip", [("flutter/bin/flutter", b"", 0o100755)])
    extract(archive, dest)
    assert not (dest / "leftover").exists()


def test_unsupported_archive(tmp_path: Path):
    archive = tmp_path / "a.rar"
    archive.write_bytes(b"")
    with pytest.raises(ValueError, match="Unsupported"):
        extract(archive, tmp_path / "out")


def test_single_root_requires_exactly_one_directory(tmp_path: Path):
    (tmp_path / "a").mkdir()
    (tmp_path / ".hidden").touch()
    assert single_root(tmp_path) == tmp_path / "a"
    (tmp_path / "b").mkdir()
    with pytest.raises(StructuralError):
        single_root(tmp_path)


def test_install_tree_replaces_target(tmp_path: Path):
    src = tmp_path / "staging" / "flutter"
    src.mkdir(parents=True)
    (src / "new").touch()
    target = tmp_path / "tools" / "flutter"
    target.mkdir(parents=True)
    (target / "old").touch()

    install_tree(src, target)

    assert (target / "new").exists()
    assert not (target / "old").exists()
    assert not src.exists()
