from __future__ import annotations

import logging

from .base import Step, StepContext

logger = logging.getLogger(__name__)


class VirtualizationStep(Step):
    step_id = "80_virtualization"
    title = "Emulator acceleration"
    requires = ("40_android_sdk_packages",)
    fatal = False
    retryable = False

    def is_satisfied(self, ctx: StepContext) -> bool:
        return ctx.adapter.virtualization_ready(ctx.layout, ctx.tool_env())

    def run(self, ctx: StepContext) -> None:
        ctx.adapter.enable_virtualization(ctx.layout, ctx.tool_env())
