from __future__ import annotations

import logging

from .base import Step, StepContext, fetch_and_install

logger = logging.getLogger(__name__)


class InstallJdkStep(Step):
    step_id = "20_install_jdk"
    title = "Java Development Kit"

    def is_satisfied(self, ctx: StepContext) -> bool:
        return ctx.layout.java_bin.exists()

    def run(self, ctx: StepContext) -> None:
        version = ctx.config.java_version
        fetch_and_install(
            ctx,
            self.step_id,
            url=ctx.adapter.jdk_url(version),
            archive_name=ctx.adapter.jdk_archive_name(version),
            target=ctx.adapter.jdk_install_dir(ctx.layout, version),
        )
