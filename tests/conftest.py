"""
Pytest configuration and fixtures for mobiledev-setup tests.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Generator, List, Optional, Tuple

import pytest

from mobiledev_setup.config import SetupConfig, load_config
from mobiledev_setup.executor import StepOutcome
from mobiledev_setup.lib.command import CmdResult
from mobiledev_setup.lib.env import EnvBackend, EnvironmentMutator, Scope, join_unique, split_path_like
from mobiledev_setup.lib.markers import sdk_package_markers
from mobiledev_setup.lib.platforms import FLUTTER_RELEASES, PackageManager, PlatformAdapter
from mobiledev_setup.logging_utils import reset_logging
from mobiledev_setup.progress import ProgressReporter
from mobiledev_setup.steps.base import StepContext


# ============================================================================
# Fakes
# ============================================================================


class MemoryBackend(EnvBackend):
    """Environment persistence kept in a dict, keyed by scope."""

    delimiter = ":"

    def __init__(self) -> None:
        self.values: Dict[Scope, Dict[str, str]] = {Scope.USER: {}, Scope.SYSTEM: {}}
        self.writes = 0

    def get(self, name: str, scope: Scope) -> Optional[str]:
        return self.values[scope].get(name)

    def set(self, name: str, value: str, scope: Scope) -> None:
        self.writes += 1
        self.values[scope][name] = value

    def delete(self, name: str, scope: Scope) -> None:
        self.values[scope].pop(name, None)

    def compose(self, name: str, current: Optional[str]) -> Optional[str]:
        user = self.values[Scope.USER].get(name)
        if name == "PATH":
            return join_unique([*split_path_like(user, ":"), *split_path_like(current, ":")], ":")
        return user if user is not None else current


class FakeAdapter(PlatformAdapter):
    os_name = "linux"
    path_delimiter = ":"
    supported_arches = ("x64",)

    def __init__(
        self,
        home: Path,
        backend: EnvBackend,
        *,
        pm: Optional[PackageManager] = None,
        secondary: Optional[str] = None,
        virtualization: bool = True,
    ) -> None:
        super().__init__(arch="x86_64", home=home)
        self.backend = backend
        self.pm = pm
        self.secondary_package_manager = secondary
        self.virtualization = virtualization
        self.launched: List[List[str]] = []

    @property
    def jdk_os(self) -> str:
        return "linux"

    @property
    def android_os(self) -> str:
        return "linux"

    def flutter_url(self, version: str) -> str:
        return f"{FLUTTER_RELEASES}/linux/flutter_linux_{version}-stable.tar.xz"

    def package_manager(self) -> Optional[PackageManager]:
        return self.pm

    def system_packages(self, pm: PackageManager) -> List[str]:
        return ["git", "unzip"]

    def env_backend(self) -> EnvBackend:
        return self.backend

    def flutter_settings_path(self) -> Path:
        return self.home / ".config" / "flutter" / "settings"

    def virtualization_ready(self, layout, env) -> bool:
        return self.virtualization

    def enable_virtualization(self, layout, env) -> None:
        self.virtualization = True

    def launch_detached(self, argv, env=None) -> None:
        self.launched.append(list(argv))


class RecordingReporter(ProgressReporter):
    def __init__(self) -> None:
        self.events: List[Tuple] = []

    def run_started(self, total_steps: int) -> None:
        self.events.append(("run_started", total_steps))

    def step_started(self, index: int, total: int, step_id: str, title: str) -> None:
        self.events.append(("step_started", index, step_id))

    def step_retrying(self, step_id, attempt, max_attempts, error, delay) -> None:
        self.events.append(("step_retrying", step_id, attempt))

    def step_finished(self, step_id: str, outcome: StepOutcome) -> None:
        self.events.append(("step_finished", step_id, outcome.status.value))

    def run_finished(self, run) -> None:
        self.events.append(("run_finished", run.state.value))

    def names(self) -> List[str]:
        return [e[0] for e in self.events]


def touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.touch()
    return path


DOCTOR_OK = """\
[✓] Flutter (Channel stable, 3.24.3, on Linux, locale en_US.UTF-8)
[✓] Android toolchain - develop for Android devices (Android SDK version 34.0.0)
[✓] Connected device (1 available)
[✓] Network resources

• No issues found!
"""


class FakeTools:
    """Stands in for downloads and the Android/Flutter CLIs during a pipeline run."""

    def __init__(self) -> None:
        self.calls: List[str] = []
        self.avds: List[str] = []
        self.doctor_output = DOCTOR_OK
        self.settings_path = Path()

    def fetch_and_install(self, ctx: StepContext, step_id: str, *, url: str, archive_name: str, target: Path) -> Path:
        self.calls.append(f"download:{step_id}")
        layout = ctx.layout
        if step_id == "20_install_jdk":
            touch(layout.java_bin)
        elif step_id == "30_android_cmdline_tools":
            touch(layout.sdkmanager)
            touch(layout.avdmanager)
        elif step_id == "50_install_flutter":
            touch(layout.flutter_bin)
        return target

    def accept_licenses(self, adapter, layout, env) -> CmdResult:
        self.calls.append("licenses")
        touch(layout.licenses_dir / "android-sdk-license")
        return CmdResult(argv=[], returncode=0, stdout="", stderr="")

    def install_packages(self, adapter, layout, packages, env) -> CmdResult:
        self.calls.append("sdk_packages")
        return CmdResult(argv=[], returncode=0, stdout="", stderr="")

    def run_cmd(self, argv, **kwargs) -> CmdResult:
        argv = [str(a) for a in argv]
        if "config" in argv:
            self.calls.append("flutter_config")
            sdk = argv[argv.index("--android-sdk") + 1]
            settings = self.settings_path
            settings.parent.mkdir(parents=True, exist_ok=True)
            settings.write_text(json.dumps({"android-sdk": sdk}), encoding="utf-8")
            return CmdResult(argv=argv, returncode=0, stdout="", stderr="")
        if "doctor" in argv:
            self.calls.append("doctor")
            return CmdResult(argv=argv, returncode=0, stdout=self.doctor_output, stderr="")
        raise AssertionError(f"unexpected command {argv}")

    def run_cmd_answering(self, argv, **kwargs) -> CmdResult:
        self.calls.append("doctor_licenses")
        return CmdResult(argv=list(argv), returncode=0, stdout="", stderr="")

    def list_avds(self, adapter, layout, env) -> List[str]:
        return list(self.avds)

    def create_avd(self, adapter, layout, config, env) -> CmdResult:
        self.calls.append("create_avd")
        self.avds.append(config.avd_name)
        return CmdResult(argv=[], returncode=0, stdout="", stderr="")


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def _reset_logging() -> Generator[None, None, None]:
    yield
    reset_logging()


@pytest.fixture
def home(tmp_path: Path) -> Path:
    h = tmp_path / "home"
    h.mkdir()
    return h


@pytest.fixture
def config(home: Path, tmp_path: Path) -> SetupConfig:
    return load_config(
        overrides={
            "install_root": str(home / "tools"),
            "use_package_manager": False,
            "prompt": False,
            "progress": "plain",
            "log_path": str(tmp_path / "setup.log"),
            "retry": {"max_attempts": 3, "delay": 0.0, "max_delay": 0.0},
        }
    )


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def environ() -> Dict[str, str]:
    return {"PATH": "/usr/bin:/bin"}


@pytest.fixture
def env(backend: MemoryBackend, environ: Dict[str, str]) -> EnvironmentMutator:
    return EnvironmentMutator(backend, environ=environ)


@pytest.fixture
def adapter(home: Path, backend: MemoryBackend) -> FakeAdapter:
    return FakeAdapter(home, backend)


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def ctx(config: SetupConfig, adapter: FakeAdapter, env: EnvironmentMutator, reporter: RecordingReporter) -> StepContext:
    return StepContext(config=config, adapter=adapter, layout=adapter.layout(config), env=env, reporter=reporter)


@pytest.fixture
def fake_tools(monkeypatch: pytest.MonkeyPatch, adapter: FakeAdapter, config: SetupConfig) -> FakeTools:
    tools = FakeTools()
    tools.settings_path = adapter.flutter_settings_path()

    def _install_packages(a, layout, packages, env):
        for marker in sdk_package_markers(layout, config, a.system_image_abi):
            if marker in (layout.adb, layout.emulator):
                touch(marker)
            else:
                marker.mkdir(parents=True, exist_ok=True)
        return tools.install_packages(a, layout, packages, env)

    prefix = "mobiledev_setup.steps"
    for module in ("step_20_install_jdk", "step_30_android_cmdline_tools", "step_50_install_flutter"):
        monkeypatch.setattr(f"{prefix}.{module}.fetch_and_install", tools.fetch_and_install)
    monkeypatch.setattr(f"{prefix}.step_35_android_licenses.accept_licenses", tools.accept_licenses)
    monkeypatch.setattr(f"{prefix}.step_40_android_sdk_packages.install_packages", _install_packages)
    monkeypatch.setattr(f"{prefix}.step_60_configure_flutter.run_cmd", tools.run_cmd)
    monkeypatch.setattr(f"{prefix}.step_70_android_toolchain_doctor.run_cmd", tools.run_cmd)
    monkeypatch.setattr(f"{prefix}.step_70_android_toolchain_doctor.run_cmd_answering", tools.run_cmd_answering)
    monkeypatch.setattr(f"{prefix}.step_75_create_avd.list_avds", tools.list_avds)
    monkeypatch.setattr(f"{prefix}.step_75_create_avd.create_avd", tools.create_avd)
    monkeypatch.setattr(f"{prefix}.step_90_flutter_doctor.run_cmd", tools.run_cmd)
    return tools
