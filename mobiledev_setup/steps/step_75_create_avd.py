from __future__ import annotations

import logging

from ..lib.android import create_avd, list_avds
from .base import Step, StepContext

logger = logging.getLogger(__name__)


class CreateAvdStep(Step):
    step_id = "75_create_avd"
    title = "Android virtual device"
    requires = ("40_android_sdk_packages",)

    def is_satisfied(self, ctx: StepContext) -> bool:
        return ctx.config.avd_name in list_avds(ctx.adapter, ctx.layout, ctx.tool_env())

    def run(self, ctx: StepContext) -> None:
        create_avd(ctx.adapter, ctx.layout, ctx.config, ctx.tool_env())
