from __future__ import annotations

import logging

from .base import Step, StepContext, fetch_and_install

logger = logging.getLogger(__name__)


class InstallFlutterStep(Step):
    step_id = "50_install_flutter"
    title = "Flutter SDK"

    def is_satisfied(self, ctx: StepContext) -> bool:
        return ctx.layout.flutter_bin.exists()

    def run(self, ctx: StepContext) -> None:
        url = ctx.adapter.flutter_url(ctx.config.flutter_version)
        fetch_and_install(
            ctx,
            self.step_id,
            url=url,
            archive_name=url.rsplit("/", 1)[-1],
            target=ctx.layout.flutter_dir,
        )
