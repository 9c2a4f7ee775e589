from __future__ import annotations

import logging

from ..lib.android import install_packages, sdk_packages
from ..lib.markers import all_exist, sdk_package_markers
from .base import Step, StepContext

logger = logging.getLogger(__name__)


class AndroidSdkPackagesStep(Step):
    step_id = "40_android_sdk_packages"
    title = "Android SDK packages"
    requires = ("35_android_licenses",)

    def is_satisfied(self, ctx: StepContext) -> bool:
        return all_exist(sdk_package_markers(ctx.layout, ctx.config, ctx.adapter.system_image_abi))

    def run(self, ctx: StepContext) -> None:
        packages = sdk_packages(ctx.config, ctx.adapter.system_image_abi)
        logger.info("Installing SDK packages: %s", ", ".join(packages))
        install_packages(ctx.adapter, ctx.layout, packages, ctx.tool_env())
