from __future__ import annotations

import copy
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

VERBOSITY_LEVELS = ("silent", "normal", "verbose")
PROGRESS_MODES = ("auto", "interactive", "plain")

DEFAULT_LOG_PATH = str(Path(tempfile.gettempdir()) / "mobiledev-setup.log")

DEFAULTS: Dict[str, Any] = {
    "install_root": "~/tools",
    "flutter_version": "3.24.3",
    "java_version": "17",
    "use_package_manager": True,
    "verbosity": "normal",
    "progress": "auto",
    "log_path": DEFAULT_LOG_PATH,
    "prompt": True,
    "min_free_gb": 5,
    "android": {
        "api_level": 34,
        "build_tools": "34.0.0",
        "system_image_tag": "google_apis",
        "avd_name": "flutter_avd",
        "avd_device": "pixel",
        "cmdline_tools_build": "10406996",
    },
    "retry": {
        "max_attempts": 3,
        "delay": 2.0,
        "max_delay": 30.0,
    },
}


def _deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for key, value in override.items():
        if value is None:
            continue
        if isinstance(value, Mapping) and isinstance(out.get(key), dict):
            out[key] = _deep_merge(out[key], value)
        else:
            out[key] = value
    return out


@dataclass(frozen=True)
class SetupConfig:
    raw: Dict[str, Any]

    @property
    def install_root(self) -> Path:
        return Path(str(self.raw.get("install_root") or DEFAULTS["install_root"])).expanduser()

    @property
    def flutter_version(self) -> str:
        return str(self.raw.get("flutter_version") or DEFAULTS["flutter_version"])

    @property
    def java_version(self) -> str:
        return str(self.raw.get("java_version") or DEFAULTS["java_version"])

    @property
    def use_package_manager(self) -> bool:
        return bool(self.raw.get("use_package_manager", True))

    @property
    def verbosity(self) -> str:
        value = str(self.raw.get("verbosity") or "normal").lower()
        if value not in VERBOSITY_LEVELS:
            raise ValueError(f"verbosity must be one of {VERBOSITY_LEVELS}, got {value!r}")
        return value

    @property
    def progress(self) -> str:
        value = str(self.raw.get("progress") or "auto").lower()
        if value not in PROGRESS_MODES:
            raise ValueError(f"progress must be one of {PROGRESS_MODES}, got {value!r}")
        return value

    @property
    def log_path(self) -> str:
        return str(self.raw.get("log_path") or DEFAULT_LOG_PATH)

    @property
    def prompt(self) -> bool:
        return bool(self.raw.get("prompt", True))

    @property
    def min_free_bytes(self) -> int:
        return int(float(self.raw.get("min_free_gb", 5)) * 1024**3)

    @property
    def android_api(self) -> int:
        return int((self.raw.get("android") or {}).get("api_level") or 34)

    @property
    def build_tools(self) -> str:
        return str((self.raw.get("android") or {}).get("build_tools") or "34.0.0")

    @property
    def system_image_tag(self) -> str:
        return str((self.raw.get("android") or {}).get("system_image_tag") or "google_apis")

    @property
    def avd_name(self) -> str:
        return str((self.raw.get("android") or {}).get("avd_name") or "flutter_avd")

    @property
    def avd_device(self) -> str:
        return str((self.raw.get("android") or {}).get("avd_device") or "pixel")

    @property
    def cmdline_tools_build(self) -> str:
        return str((self.raw.get("android") or {}).get("cmdline_tools_build") or "10406996")

    @property
    def retry_max_attempts(self) -> int:
        return max(1, int((self.raw.get("retry") or {}).get("max_attempts") or 3))

    @property
    def retry_delay(self) -> float:
        return float((self.raw.get("retry") or {}).get("delay", 2.0))

    @property
    def retry_max_delay(self) -> float:
        return float((self.raw.get("retry") or {}).get("max_delay", 30.0))

    def with_overrides(self, overrides: Mapping[str, Any]) -> "SetupConfig":
        return SetupConfig(raw=_deep_merge(self.raw, overrides))


def load_config(path: Optional[str] = None, overrides: Optional[Mapping[str, Any]] = None) -> SetupConfig:
    """Load defaults, then an optional YAML file, then CLI overrides (None values ignored)."""

    raw = copy.deepcopy(DEFAULTS)

    if path:
        p = Path(path).expanduser()
        if not p.exists():
            raise FileNotFoundError(path)
        if p.suffix.lower() not in {".yaml", ".yml"}:
            raise ValueError("setup config must be YAML")
        try:
            data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"{p.name}: invalid YAML: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"{p.name} must contain a mapping/object")
        raw = _deep_merge(raw, data)

    cfg = SetupConfig(raw=raw)
    if overrides:
        cfg = cfg.with_overrides(overrides)
    # Validate enum settings.
    cfg.verbosity
    cfg.progress
    return cfg
