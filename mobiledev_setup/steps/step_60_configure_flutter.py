from __future__ import annotations

import logging

from ..lib.command import run_cmd
from ..lib.markers import flutter_configured
from .base import Step, StepContext

logger = logging.getLogger(__name__)


class ConfigureFlutterStep(Step):
    step_id = "60_configure_flutter"
    title = "Point Flutter at the Android SDK"
    requires = ("40_android_sdk_packages", "50_install_flutter")

    def is_satisfied(self, ctx: StepContext) -> bool:
        return flutter_configured(ctx.adapter.flutter_settings_path(), ctx.layout.android_sdk)

    def run(self, ctx: StepContext) -> None:
        layout = ctx.layout
        run_cmd(
            ctx.adapter.tool_argv(layout.flutter_bin, "config", "--android-sdk", str(layout.android_sdk)),
            env=ctx.tool_env(),
        )
