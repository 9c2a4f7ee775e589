from __future__ import annotations

import logging

from ..errors import StructuralError
from ..lib.command import run_cmd, run_cmd_answering
from ..lib.doctor import doctor_passed
from .base import Step, StepContext

logger = logging.getLogger(__name__)


class AndroidToolchainDoctorStep(Step):
    """Let Flutter confirm it sees the SDK and its licenses."""

    step_id = "70_android_toolchain_doctor"
    title = "Flutter Android toolchain check"
    requires = ("60_configure_flutter",)
    fatal = False
    idempotent = False
    retryable = False

    def run(self, ctx: StepContext) -> None:
        env = ctx.tool_env()
        flutter = ctx.layout.flutter_bin
        run_cmd_answering(ctx.adapter.tool_argv(flutter, "doctor", "--android-licenses"), check=False, env=env)
        r = run_cmd(ctx.adapter.tool_argv(flutter, "doctor"), check=False, env=env)
        if not doctor_passed(r.stdout, "Android toolchain"):
            raise StructuralError("flutter doctor reports problems with the Android toolchain")
