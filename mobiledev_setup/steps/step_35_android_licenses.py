from __future__ import annotations

import logging

from ..lib.android import accept_licenses
from ..lib.markers import licenses_accepted
from .base import Step, StepContext

logger = logging.getLogger(__name__)


class AndroidLicensesStep(Step):
    step_id = "35_android_licenses"
    title = "Android SDK licenses"
    requires = ("20_install_jdk", "30_android_cmdline_tools")

    def is_satisfied(self, ctx: StepContext) -> bool:
        return licenses_accepted(ctx.layout)

    def run(self, ctx: StepContext) -> None:
        accept_licenses(ctx.adapter, ctx.layout, ctx.tool_env())
