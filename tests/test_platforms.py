"""
Tests for platform adapters and the install layout.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from mobiledev_setup.errors import UnsupportedPlatformError
from mobiledev_setup.lib.platforms import (
    LinuxAdapter,
    MacOSAdapter,
    WindowsAdapter,
    detect_adapter,
    normalize_arch,
)


@pytest.mark.parametrize(
    "machine, arch",
    [("x86_64", "x64"), ("AMD64", "x64"), ("aarch64", "arm64"), ("arm64", "arm64"), ("riscv64", "riscv64")],
)
def test_normalize_arch(machine: str, arch: str):
    assert normalize_arch(machine) == arch


def test_detect_adapter_by_os(home: Path):
    assert isinstance(detect_adapter(system="Linux", machine="x86_64", home=home), LinuxAdapter)
    assert isinstance(detect_adapter(system="Darwin", machine="arm64", home=home), MacOSAdapter)
    assert isinstance(detect_adapter(system="Windows", machine="AMD64", home=home), WindowsAdapter)


def test_detect_adapter_rejects_unknown_os(home: Path):
    with pytest.raises(UnsupportedPlatformError, match="freebsd"):
        detect_adapter(system="FreeBSD", machine="x86_64", home=home)


def test_detect_adapter_rejects_unsupported_arch(home: Path):
    with pytest.raises(UnsupportedPlatformError, match="arm64"):
        detect_adapter(system="Linux", machine="aarch64", home=home)


def test_layout_paths(config, home: Path):
    layout = LinuxAdapter(arch="x86_64", home=home).layout(config)
    root = home / "tools"
    assert layout.java_home == root / "java" / "jdk17"
    assert layout.java_bin == root / "java" / "jdk17" / "bin" / "java"
    assert layout.sdkmanager == root / "android-sdk" / "cmdline-tools" / "latest" / "bin" / "sdkmanager"
    assert layout.adb == root / "android-sdk" / "platform-tools" / "adb"
    assert layout.flutter_bin == root / "flutter" / "bin" / "flutter"
    assert layout.lock_file.parent == root
    assert layout.path_segments() == [
        root / "java" / "jdk17" / "bin",
        root / "android-sdk" / "platform-tools",
        root / "android-sdk" / "emulator",
        root / "android-sdk" / "cmdline-tools" / "latest" / "bin",
        root / "flutter" / "bin",
    ]


def test_windows_layout_suffixes(config, home: Path):
    layout = WindowsAdapter(arch="AMD64", home=home).layout(config)
    assert layout.sdkmanager.name == "sdkmanager.bat"
    assert layout.flutter_bin.name == "flutter.bat"
    assert layout.adb.name == "adb.exe"
    assert layout.java_bin.name == "java.exe"


def test_macos_java_home_is_inside_bundle(config, home: Path):
    adapter = MacOSAdapter(arch="arm64", home=home)
    layout = adapter.layout(config)
    assert layout.java_home == home / "tools" / "java" / "jdk17" / "Contents" / "Home"
    assert adapter.jdk_install_dir(layout, "17") == home / "tools" / "java" / "jdk17"


def test_download_urls(home: Path):
    linux = LinuxAdapter(arch="x86_64", home=home)
    assert linux.flutter_url("3.24.3").endswith("/linux/flutter_linux_3.24.3-stable.tar.xz")
    assert linux.jdk_url("17").endswith("/17/ga/linux/x64/jdk/hotspot/normal/eclipse")
    assert linux.jdk_archive_name("17") == "jdk17-linux-x64.tar.gz"
    assert linux.cmdline_tools_url("10406996").endswith("/commandlinetools-linux-10406996_latest.zip")

    mac = MacOSAdapter(arch="arm64", home=home)
    assert mac.flutter_url("3.24.3").endswith("/macos/flutter_macos_arm64_3.24.3-stable.zip")
    assert "/mac/aarch64/" in mac.jdk_url("17")
    assert mac.system_image_abi == "arm64-v8a"

    win = WindowsAdapter(arch="AMD64", home=home)
    assert win.flutter_url("3.24.3").endswith("/windows/flutter_windows_3.24.3-stable.zip")
    assert win.jdk_archive_name("17").endswith(".zip")
    assert win.cmdline_tools_url("10406996").endswith("/commandlinetools-win-10406996_latest.zip")
    assert win.system_image_abi == "x86_64"


def test_windows_runs_batch_files_through_cmd(home: Path):
    win = WindowsAdapter(arch="AMD64", home=home)
    assert win.tool_argv(Path("C:/sdk/sdkmanager.bat"), "--list") == ["cmd", "/c", "C:/sdk/sdkmanager.bat", "--list"]
    assert win.tool_argv(Path("C:/sdk/adb.exe"), "devices") == ["C:/sdk/adb.exe", "devices"]


@pytest.mark.parametrize(
    "os_release, family",
    [
        ('ID=ubuntu\nID_LIKE=debian\nVERSION_ID="22.04"\n', "apt"),
        ("ID=linuxmint\nID_LIKE=\"ubuntu debian\"\n", "apt"),
        ("ID=fedora\n", "dnf"),
        ('ID="rocky"\nID_LIKE="rhel centos fedora"\n', "dnf"),
        ("ID=manjaro\nID_LIKE=arch\n", "pacman"),
        ("ID=gentoo\n", "apt"),
    ],
)
def test_distro_family(tmp_path: Path, home: Path, os_release: str, family: str):
    p = tmp_path / "os-release"
    p.write_text(os_release, encoding="utf-8")
    adapter = LinuxAdapter(arch="x86_64", home=home, os_release=p)
    assert adapter.distro_family() == family
    pm = adapter.package_manager()
    assert pm is not None
    assert adapter.system_packages(pm)


def test_missing_os_release_falls_back_to_apt(tmp_path: Path, home: Path):
    adapter = LinuxAdapter(arch="x86_64", home=home, os_release=tmp_path / "absent")
    assert adapter.package_manager().name == "apt"


def test_linux_profiles(home: Path):
    adapter = LinuxAdapter(arch="x86_64", home=home)
    assert adapter.env_backend().user_profiles == [home / ".bashrc"]
    (home / ".zshrc").touch()
    assert adapter.env_backend().user_profiles == [home / ".bashrc", home / ".zshrc"]


def test_macos_package_manager_bootstraps_without_sudo(home: Path):
    pm = MacOSAdapter(arch="x86_64", home=home).package_manager()
    assert pm.name == "brew"
    assert pm.bootstrap_argv
    assert not pm.needs_privileges


def test_pub_cache_honours_env(monkeypatch: pytest.MonkeyPatch, home: Path, tmp_path: Path):
    adapter = LinuxAdapter(arch="x86_64", home=home)
    monkeypatch.delenv("PUB_CACHE", raising=False)
    assert adapter.pub_cache_dir == home / ".pub-cache"
    monkeypatch.setenv("PUB_CACHE", str(tmp_path / "cache"))
    assert adapter.pub_cache_dir == tmp_path / "cache"
