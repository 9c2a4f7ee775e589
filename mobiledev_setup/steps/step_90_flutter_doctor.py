from __future__ import annotations

import logging

from ..errors import StructuralError
from ..lib.command import run_cmd
from ..lib.doctor import MISSING, doctor_passed, parse_sections
from .base import Step, StepContext

logger = logging.getLogger(__name__)


class FlutterDoctorStep(Step):
    step_id = "90_flutter_doctor"
    title = "flutter doctor"
    requires = ("50_install_flutter",)
    fatal = False
    idempotent = False
    retryable = False

    def run(self, ctx: StepContext) -> None:
        r = run_cmd(ctx.adapter.tool_argv(ctx.layout.flutter_bin, "doctor", "-v"), check=False, env=ctx.tool_env())
        sections = parse_sections(r.stdout)
        if not doctor_passed(r.stdout):
            missing = [title for title, status in sections.items() if status == MISSING]
            raise StructuralError("flutter doctor reported issues: " + (", ".join(missing) or "no output"))
        logger.info("flutter doctor: %s", ", ".join(f"{t}={s}" for t, s in sections.items()))
