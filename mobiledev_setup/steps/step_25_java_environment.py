from __future__ import annotations

from pathlib import Path
from typing import Dict, List

from .base import EnvironmentStep, StepContext


class JavaEnvironmentStep(EnvironmentStep):
    step_id = "25_java_environment"
    title = "Java environment"
    requires = ("20_install_jdk",)

    def variables(self, ctx: StepContext) -> Dict[str, str]:
        return {"JAVA_HOME": str(ctx.layout.java_home)}

    def path_segments(self, ctx: StepContext) -> List[Path]:
        return ctx.layout.java_path_segments()
