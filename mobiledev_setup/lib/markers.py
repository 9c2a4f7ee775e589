from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, Mapping

from ..config import SetupConfig
from .env import EnvironmentMutator, Scope
from .platforms import ToolLayout

logger = logging.getLogger(__name__)

LICENSE_FILE = "android-sdk-license"


def all_exist(paths: Iterable[Path]) -> bool:
    for p in paths:
        if not p.exists():
            logger.debug("Marker missing: %s", p)
            return False
    return True


def licenses_accepted(layout: ToolLayout) -> bool:
    return (layout.licenses_dir / LICENSE_FILE).is_file()


def sdk_package_markers(layout: ToolLayout, config: SetupConfig, abi: str) -> list[Path]:
    sdk = layout.android_sdk
    return [
        layout.adb,
        layout.emulator,
        sdk / "platforms" / f"android-{config.android_api}",
        sdk / "build-tools" / config.build_tools,
        sdk / "system-images" / f"android-{config.android_api}" / config.system_image_tag / abi,
    ]


def flutter_android_sdk(settings_path: Path) -> str | None:
    """The android-sdk path Flutter has recorded, if any."""

    try:
        data = json.loads(settings_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except ValueError:
        logger.debug("Unreadable Flutter settings: %s", settings_path)
        return None
    if not isinstance(data, dict):
        return None
    value = data.get("android-sdk")
    return str(value) if value else None


def flutter_configured(settings_path: Path, sdk: Path) -> bool:
    recorded = flutter_android_sdk(settings_path)
    if recorded is None:
        return False
    return Path(recorded).expanduser().resolve() == sdk.expanduser().resolve()


def environment_configured(
    env: EnvironmentMutator,
    variables: Mapping[str, str],
    path_segments: Iterable[Path],
    scope: Scope = Scope.USER,
) -> bool:
    for name, value in variables.items():
        if not env.is_variable_set(name, value, scope):
            logger.debug("%s not persisted as %s", name, value)
            return False
    for segment in path_segments:
        if not env.has_path_segment("PATH", str(segment), scope):
            logger.debug("PATH lacks %s", segment)
            return False
    return True
