from __future__ import annotations

from pathlib import Path
from typing import Dict, List

from .base import EnvironmentStep, StepContext


class AndroidEnvironmentStep(EnvironmentStep):
    step_id = "45_android_environment"
    title = "Android environment"
    requires = ("30_android_cmdline_tools",)

    def variables(self, ctx: StepContext) -> Dict[str, str]:
        sdk = str(ctx.layout.android_sdk)
        return {"ANDROID_HOME": sdk, "ANDROID_SDK_ROOT": sdk}

    def path_segments(self, ctx: StepContext) -> List[Path]:
        return ctx.layout.android_path_segments()
