from __future__ import annotations

import logging
from typing import List, Mapping

from ..config import SetupConfig
from .command import CmdResult, run_cmd, run_cmd_answering
from .platforms import PlatformAdapter, ToolLayout

logger = logging.getLogger(__name__)


def system_image_package(config: SetupConfig, abi: str) -> str:
    return f"system-images;android-{config.android_api};{config.system_image_tag};{abi}"


def sdk_packages(config: SetupConfig, abi: str) -> List[str]:
    return [
        "platform-tools",
        f"platforms;android-{config.android_api}",
        f"build-tools;{config.build_tools}",
        "emulator",
        "cmdline-tools;latest",
        system_image_package(config, abi),
    ]


def _sdk_root_arg(layout: ToolLayout) -> str:
    return f"--sdk_root={layout.android_sdk}"


def accept_licenses(adapter: PlatformAdapter, layout: ToolLayout, env: Mapping[str, str]) -> CmdResult:
    """Accept every pending SDK license.

    sdkmanager asks once per license and the number of licenses changes over
    time, so answers are streamed until it exits.
    """

    argv = adapter.tool_argv(layout.sdkmanager, _sdk_root_arg(layout), "--licenses")
    return run_cmd_answering(argv, answer="y", env=env)


def install_packages(
    adapter: PlatformAdapter,
    layout: ToolLayout,
    packages: List[str],
    env: Mapping[str, str],
) -> CmdResult:
    argv = adapter.tool_argv(layout.sdkmanager, _sdk_root_arg(layout), "--install", *packages)
    # sdkmanager may still ask about licenses added since the licenses step.
    return run_cmd_answering(argv, answer="y", env=env, timeout=3600)


def list_avds(adapter: PlatformAdapter, layout: ToolLayout, env: Mapping[str, str]) -> List[str]:
    r = run_cmd(adapter.tool_argv(layout.avdmanager, "list", "avd", "-c"), check=False, env=env, timeout=120)
    if not r.ok:
        return []
    return [line.strip() for line in r.stdout.splitlines() if line.strip()]


def create_avd(
    adapter: PlatformAdapter,
    layout: ToolLayout,
    config: SetupConfig,
    env: Mapping[str, str],
) -> CmdResult:
    argv = adapter.tool_argv(
        layout.avdmanager,
        "create",
        "avd",
        "--force",
        "--name",
        config.avd_name,
        "--package",
        system_image_package(config, adapter.system_image_abi),
        "--device",
        config.avd_device,
    )
    # "Do you wish to create a custom hardware profile? [no]"
    return run_cmd(argv, env=env, input_text="no\n", timeout=600)


def emulator_argv(adapter: PlatformAdapter, layout: ToolLayout, avd_name: str) -> List[str]:
    return adapter.tool_argv(layout.emulator, "-avd", avd_name, "-netdelay", "none", "-netspeed", "full")


def running_emulators(adapter: PlatformAdapter, layout: ToolLayout, env: Mapping[str, str]) -> List[str]:
    r = run_cmd(adapter.tool_argv(layout.adb, "devices"), check=False, env=env, timeout=60)
    if not r.ok:
        return []
    serials = []
    for line in r.stdout.splitlines():
        parts = line.split()
        if parts and parts[0].startswith("emulator-"):
            serials.append(parts[0])
    return serials


def kill_emulators(adapter: PlatformAdapter, layout: ToolLayout, env: Mapping[str, str]) -> int:
    serials = running_emulators(adapter, layout, env)
    for serial in serials:
        logger.info("Stopping emulator %s", serial)
        run_cmd(adapter.tool_argv(layout.adb, "-s", serial, "emu", "kill"), check=False, env=env, timeout=60)
    return len(serials)
