from __future__ import annotations

import logging

from .base import Step, StepContext, fetch_and_install

logger = logging.getLogger(__name__)


class AndroidCmdlineToolsStep(Step):
    step_id = "30_android_cmdline_tools"
    title = "Android command-line tools"

    def is_satisfied(self, ctx: StepContext) -> bool:
        return ctx.layout.sdkmanager.exists()

    def run(self, ctx: StepContext) -> None:
        build = ctx.config.cmdline_tools_build
        # The archive's single root (cmdline-tools/) becomes cmdline-tools/latest.
        fetch_and_install(
            ctx,
            self.step_id,
            url=ctx.adapter.cmdline_tools_url(build),
            archive_name=f"commandlinetools-{ctx.adapter.android_os}-{build}.zip",
            target=ctx.layout.cmdline_tools,
        )
