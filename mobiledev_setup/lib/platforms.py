from __future__ import annotations

import logging
import os
import platform
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

from ..config import SetupConfig
from ..errors import StructuralError, UnsupportedPlatformError
from .command import run_cmd
from .env import EnvBackend, ShellProfileBackend, WindowsRegistryBackend

logger = logging.getLogger(__name__)

FLUTTER_RELEASES = "https://storage.googleapis.com/flutter_infra_release/releases/stable"
ADOPTIUM_API = "https://api.adoptium.net/v3/binary/latest"
ANDROID_REPOSITORY = "https://dl.google.com/android/repository"


def normalize_arch(machine: str) -> str:
    m = machine.lower()
    return {
        "x86_64": "x64",
        "amd64": "x64",
        "x64": "x64",
        "aarch64": "arm64",
        "arm64": "arm64",
    }.get(m, m)


@dataclass(frozen=True)
class ToolLayout:
    """Canonical on-disk layout under the install root."""

    install_root: Path
    java_home: Path
    android_sdk: Path
    flutter_dir: Path
    exe_suffix: str = ""
    script_suffix: str = ""

    @property
    def java_dir(self) -> Path:
        return self.install_root / "java"

    @property
    def java_bin(self) -> Path:
        return self.java_home / "bin" / f"java{self.exe_suffix}"

    @property
    def cmdline_tools(self) -> Path:
        return self.android_sdk / "cmdline-tools" / "latest"

    @property
    def sdkmanager(self) -> Path:
        return self.cmdline_tools / "bin" / f"sdkmanager{self.script_suffix}"

    @property
    def avdmanager(self) -> Path:
        return self.cmdline_tools / "bin" / f"avdmanager{self.script_suffix}"

    @property
    def platform_tools(self) -> Path:
        return self.android_sdk / "platform-tools"

    @property
    def adb(self) -> Path:
        return self.platform_tools / f"adb{self.exe_suffix}"

    @property
    def emulator(self) -> Path:
        return self.android_sdk / "emulator" / f"emulator{self.exe_suffix}"

    @property
    def licenses_dir(self) -> Path:
        return self.android_sdk / "licenses"

    @property
    def flutter_bin(self) -> Path:
        return self.flutter_dir / "bin" / f"flutter{self.script_suffix}"

    @property
    def staging_dir(self) -> Path:
        return self.install_root / ".staging"

    @property
    def downloads_dir(self) -> Path:
        return self.install_root / ".downloads"

    @property
    def lock_file(self) -> Path:
        return self.install_root / ".mobiledev-setup.lock"

    def java_path_segments(self) -> List[Path]:
        return [self.java_home / "bin"]

    def android_path_segments(self) -> List[Path]:
        return [self.platform_tools, self.android_sdk / "emulator", self.cmdline_tools / "bin"]

    def flutter_path_segments(self) -> List[Path]:
        return [self.flutter_dir / "bin"]

    def path_segments(self) -> List[Path]:
        return [*self.java_path_segments(), *self.android_path_segments(), *self.flutter_path_segments()]


@dataclass(frozen=True)
class PackageManager:
    name: str
    executable: str
    install_argv: Sequence[str]
    update_argv: Optional[Sequence[str]] = None
    bootstrap_argv: Optional[Sequence[str]] = None
    bootstrap_env: Optional[Mapping[str, str]] = None
    needs_privileges: bool = True


class PlatformAdapter(ABC):
    """Everything OS-specific, behind one interface."""

    os_name: str = ""
    path_delimiter: str = ":"
    exe_suffix: str = ""
    script_suffix: str = ""
    supported_arches: Sequence[str] = ("x64",)
    secondary_package_manager: Optional[str] = None
    requires_group: Optional[str] = None
    required_commands: Sequence[str] = ()

    def __init__(self, *, arch: Optional[str] = None, home: Optional[Path] = None) -> None:
        self.arch = normalize_arch(arch or platform.machine())
        self.home = Path(home) if home else Path.home()

    def check_supported(self) -> None:
        if self.arch not in self.supported_arches:
            raise UnsupportedPlatformError(
                f"Unsupported architecture for {self.os_name}: {self.arch} "
                f"(supported: {', '.join(self.supported_arches)})"
            )

    # ---- layout ----

    def java_home_for(self, java_dir: Path, version: str) -> Path:
        return java_dir / f"jdk{version}"

    def layout(self, config: SetupConfig) -> ToolLayout:
        root = config.install_root
        return ToolLayout(
            install_root=root,
            java_home=self.java_home_for(root / "java", config.java_version),
            android_sdk=root / "android-sdk",
            flutter_dir=root / "flutter",
            exe_suffix=self.exe_suffix,
            script_suffix=self.script_suffix,
        )

    def jdk_install_dir(self, layout: ToolLayout, version: str) -> Path:
        """Directory the extracted JDK archive root is moved to."""
        return layout.java_dir / f"jdk{version}"

    # ---- downloads ----

    @property
    @abstractmethod
    def jdk_os(self) -> str:
        ...

    @property
    @abstractmethod
    def android_os(self) -> str:
        ...

    @property
    def jdk_arch(self) -> str:
        return {"x64": "x64", "arm64": "aarch64"}[self.arch]

    @property
    def jdk_archive_ext(self) -> str:
        return "tar.gz"

    def jdk_url(self, version: str) -> str:
        return f"{ADOPTIUM_API}/{version}/ga/{self.jdk_os}/{self.jdk_arch}/jdk/hotspot/normal/eclipse"

    def jdk_archive_name(self, version: str) -> str:
        return f"jdk{version}-{self.jdk_os}-{self.jdk_arch}.{self.jdk_archive_ext}"

    def cmdline_tools_url(self, build: str) -> str:
        return f"{ANDROID_REPOSITORY}/commandlinetools-{self.android_os}-{build}_latest.zip"

    @abstractmethod
    def flutter_url(self, version: str) -> str:
        ...

    @property
    def system_image_abi(self) -> str:
        return "arm64-v8a" if self.arch == "arm64" else "x86_64"

    # ---- processes ----

    def tool_argv(self, tool: Path, *args: str) -> List[str]:
        return [str(tool), *args]

    def privileged(self, argv: Sequence[str]) -> List[str]:
        return list(argv)

    def launch_detached(self, argv: Sequence[str], env: Optional[Mapping[str, str]] = None) -> None:
        logger.info("Launching detached: %s", " ".join(argv))
        subprocess.Popen(
            list(argv),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            env=dict(os.environ, **(env or {})),
            start_new_session=True,
        )

    @abstractmethod
    def package_manager(self) -> Optional[PackageManager]:
        ...

    @abstractmethod
    def system_packages(self, pm: PackageManager) -> List[str]:
        ...

    # ---- environment ----

    @abstractmethod
    def env_backend(self) -> EnvBackend:
        ...

    @abstractmethod
    def flutter_settings_path(self) -> Path:
        ...

    @property
    def avd_home(self) -> Path:
        return self.home / ".android" / "avd"

    @property
    def pub_cache_dir(self) -> Path:
        return Path(os.environ.get("PUB_CACHE") or self.home / ".pub-cache")

    # ---- virtualization ----

    def virtualization_ready(self, layout: ToolLayout, env: Mapping[str, str]) -> bool:
        if not layout.emulator.exists():
            return False
        r = run_cmd(self.tool_argv(layout.emulator, "-accel-check"), check=False, env=env, timeout=120)
        return r.returncode == 0

    def enable_virtualization(self, layout: ToolLayout, env: Mapping[str, str]) -> None:
        raise StructuralError(
            "Emulator hardware acceleration is not available; enable it in firmware/OS settings"
        )


class LinuxAdapter(PlatformAdapter):
    os_name = "linux"
    path_delimiter = ":"
    supported_arches = ("x64",)
    secondary_package_manager = "snap"
    requires_group = "kvm"
    required_commands = ("curl", "git", "unzip", "xz", "zip")

    _PACKAGES: Dict[str, List[str]] = {
        "apt": [
            "curl", "git", "unzip", "xz-utils", "zip", "libglu1-mesa", "wget",
            "qemu-kvm", "libvirt-daemon-system", "libvirt-clients", "bridge-utils",
        ],
        "dnf": [
            "curl", "git", "unzip", "xz", "zip", "mesa-libGLU", "wget",
            "qemu-kvm", "libvirt-daemon", "libvirt-client", "bridge-utils",
        ],
        "pacman": ["curl", "git", "unzip", "xz", "zip", "glu", "wget", "qemu", "libvirt", "bridge-utils"],
    }

    def __init__(
        self,
        *,
        arch: Optional[str] = None,
        home: Optional[Path] = None,
        os_release: Path = Path("/etc/os-release"),
    ) -> None:
        super().__init__(arch=arch, home=home)
        self.os_release = os_release

    @property
    def jdk_os(self) -> str:
        return "linux"

    @property
    def android_os(self) -> str:
        return "linux"

    def flutter_url(self, version: str) -> str:
        return f"{FLUTTER_RELEASES}/linux/flutter_linux_{version}-stable.tar.xz"

    def read_os_release(self) -> Dict[str, str]:
        info: Dict[str, str] = {}
        try:
            text = self.os_release.read_text(encoding="utf-8")
        except FileNotFoundError:
            return info
        for line in text.splitlines():
            if "=" not in line or line.startswith("#"):
                continue
            key, _, value = line.partition("=")
            info[key.strip()] = value.strip().strip('"')
        return info

    def distro_family(self) -> str:
        info = self.read_os_release()
        ids = [info.get("ID", "")] + info.get("ID_LIKE", "").split()
        for distro in ids:
            if distro in {"ubuntu", "debian"}:
                return "apt"
            if distro in {"fedora", "rhel", "centos"}:
                return "dnf"
            if distro in {"arch", "manjaro"}:
                return "pacman"
        logger.warning("Unsupported distribution %r; assuming an apt-based system", info.get("ID"))
        return "apt"

    def package_manager(self) -> Optional[PackageManager]:
        family = self.distro_family()
        if family == "dnf":
            return PackageManager(name="dnf", executable="dnf", install_argv=["dnf", "install", "-y"])
        if family == "pacman":
            return PackageManager(
                name="pacman",
                executable="pacman",
                update_argv=["pacman", "-Sy", "--noconfirm"],
                install_argv=["pacman", "-S", "--noconfirm", "--needed"],
            )
        return PackageManager(
            name="apt",
            executable="apt-get",
            update_argv=["apt-get", "update", "-y"],
            install_argv=["apt-get", "install", "-y"],
        )

    def system_packages(self, pm: PackageManager) -> List[str]:
        return list(self._PACKAGES.get(pm.name, self._PACKAGES["apt"]))

    def privileged(self, argv: Sequence[str]) -> List[str]:
        if os.geteuid() == 0:
            return list(argv)
        return ["sudo", *argv]

    def env_backend(self) -> EnvBackend:
        profiles = [self.home / ".bashrc"]
        if (self.home / ".zshrc").exists():
            profiles.append(self.home / ".zshrc")
        return ShellProfileBackend(profiles)

    def flutter_settings_path(self) -> Path:
        base = os.environ.get("XDG_CONFIG_HOME") or str(self.home / ".config")
        return Path(base) / "flutter" / "settings"

    def current_user(self) -> str:
        return os.environ.get("USER") or os.environ.get("LOGNAME") or ""

    def virtualization_ready(self, layout: ToolLayout, env: Mapping[str, str]) -> bool:
        import grp

        assert self.requires_group is not None
        try:
            group = grp.getgrnam(self.requires_group)
        except KeyError:
            return False
        user = self.current_user()
        return (user and user in group.gr_mem) or group.gr_gid in os.getgroups()

    def enable_virtualization(self, layout: ToolLayout, env: Mapping[str, str]) -> None:
        user = self.current_user()
        if not user:
            raise StructuralError("Cannot determine the current user for group membership")
        run_cmd(self.privileged(["usermod", "-aG", str(self.requires_group), user]))
        logger.warning(
            "Log out and back in (or reboot) for %s group membership to take effect", self.requires_group
        )


class MacOSAdapter(PlatformAdapter):
    os_name = "macos"
    path_delimiter = ":"
    supported_arches = ("x64", "arm64")
    required_commands = ("git", "unzip")

    @property
    def jdk_os(self) -> str:
        return "mac"

    @property
    def android_os(self) -> str:
        return "mac"

    def java_home_for(self, java_dir: Path, version: str) -> Path:
        return java_dir / f"jdk{version}" / "Contents" / "Home"

    def flutter_url(self, version: str) -> str:
        arch = "arm64_" if self.arch == "arm64" else ""
        return f"{FLUTTER_RELEASES}/macos/flutter_macos_{arch}{version}-stable.zip"

    def package_manager(self) -> Optional[PackageManager]:
        return PackageManager(
            name="brew",
            executable="brew",
            install_argv=["brew", "install"],
            bootstrap_argv=[
                "/bin/bash",
                "-c",
                "$(curl -fsSL https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh)",
            ],
            bootstrap_env={"NONINTERACTIVE": "1"},
            needs_privileges=False,
        )

    def system_packages(self, pm: PackageManager) -> List[str]:
        return ["git"]

    def env_backend(self) -> EnvBackend:
        profiles = [self.home / ".zshrc"]
        if (self.home / ".bash_profile").exists():
            profiles.append(self.home / ".bash_profile")
        return ShellProfileBackend(profiles)

    def flutter_settings_path(self) -> Path:
        return self.home / ".config" / "flutter" / "settings"


class WindowsAdapter(PlatformAdapter):
    os_name = "windows"
    path_delimiter = ";"
    exe_suffix = ".exe"
    script_suffix = ".bat"
    supported_arches = ("x64",)
    secondary_package_manager = "winget"
    required_commands = ("git",)

    _CHOCO_BOOTSTRAP = (
        "Set-ExecutionPolicy Bypass -Scope Process -Force; "
        "[System.Net.ServicePointManager]::SecurityProtocol = "
        "[System.Net.ServicePointManager]::SecurityProtocol -bor 3072; "
        "iex ((New-Object System.Net.WebClient).DownloadString('https://community.chocolatey.org/install.ps1'))"
    )

    @property
    def jdk_os(self) -> str:
        return "windows"

    @property
    def android_os(self) -> str:
        return "win"

    @property
    def jdk_archive_ext(self) -> str:
        return "zip"

    def flutter_url(self, version: str) -> str:
        return f"{FLUTTER_RELEASES}/windows/flutter_windows_{version}-stable.zip"

    def tool_argv(self, tool: Path, *args: str) -> List[str]:
        if tool.suffix.lower() in {".bat", ".cmd"}:
            return ["cmd", "/c", str(tool), *args]
        return [str(tool), *args]

    def launch_detached(self, argv: Sequence[str], env: Optional[Mapping[str, str]] = None) -> None:
        logger.info("Launching detached: %s", " ".join(argv))
        flags = getattr(subprocess, "DETACHED_PROCESS", 0) | getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)
        subprocess.Popen(
            list(argv),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            env=dict(os.environ, **(env or {})),
            creationflags=flags,
        )

    def package_manager(self) -> Optional[PackageManager]:
        return PackageManager(
            name="chocolatey",
            executable="choco",
            install_argv=["choco", "install", "-y", "--no-progress"],
            bootstrap_argv=["powershell", "-NoProfile", "-ExecutionPolicy", "Bypass", "-Command", self._CHOCO_BOOTSTRAP],
            needs_privileges=False,
        )

    def system_packages(self, pm: PackageManager) -> List[str]:
        return ["git", "7zip"]

    def env_backend(self) -> EnvBackend:
        return WindowsRegistryBackend()

    def flutter_settings_path(self) -> Path:
        appdata = os.environ.get("APPDATA") or str(self.home / "AppData" / "Roaming")
        return Path(appdata) / ".flutter_settings"

    @property
    def pub_cache_dir(self) -> Path:
        if os.environ.get("PUB_CACHE"):
            return Path(os.environ["PUB_CACHE"])
        local = os.environ.get("LOCALAPPDATA") or str(self.home / "AppData" / "Local")
        return Path(local) / "Pub" / "Cache"

    def enable_virtualization(self, layout: ToolLayout, env: Mapping[str, str]) -> None:
        raise StructuralError(
            "Emulator hardware acceleration is not available; enable 'Windows Hypervisor Platform' "
            "in Windows Features and reboot"
        )


def detect_adapter(
    *,
    system: Optional[str] = None,
    machine: Optional[str] = None,
    home: Optional[Path] = None,
) -> PlatformAdapter:
    """Pick the adapter for this machine. The only place that inspects the OS name."""

    name = (system or platform.system()).lower()
    adapter: PlatformAdapter
    if name == "linux":
        adapter = LinuxAdapter(arch=machine, home=home)
    elif name == "windows":
        adapter = WindowsAdapter(arch=machine, home=home)
    elif name == "darwin":
        adapter = MacOSAdapter(arch=machine, home=home)
    else:
        raise UnsupportedPlatformError(f"Unsupported operating system: {name}")
    adapter.check_supported()
    return adapter
