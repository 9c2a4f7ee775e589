from __future__ import annotations

from pathlib import Path
from typing import List

from .base import EnvironmentStep, StepContext


class FlutterEnvironmentStep(EnvironmentStep):
    step_id = "55_flutter_environment"
    title = "Flutter environment"
    requires = ("50_install_flutter",)

    def path_segments(self, ctx: StepContext) -> List[Path]:
        return ctx.layout.flutter_path_segments()
