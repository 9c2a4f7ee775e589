from __future__ import annotations

import logging

from ..lib.pkg import commands_present, install, update_index
from .base import Step, StepContext

logger = logging.getLogger(__name__)


class SystemPackagesStep(Step):
    step_id = "10_system_packages"
    title = "System packages"
    requires = ("05_package_manager",)

    def is_satisfied(self, ctx: StepContext) -> bool:
        return commands_present(ctx.adapter.required_commands, ctx.tool_env())

    def run(self, ctx: StepContext) -> None:
        pm = ctx.adapter.package_manager()
        assert pm is not None
        packages = ctx.adapter.system_packages(pm)
        logger.info("Installing with %s: %s", pm.name, " ".join(packages))
        env = ctx.tool_env()
        update_index(ctx.adapter, pm, env)
        install(ctx.adapter, pm, packages, env)
        ctx.env.refresh("PATH")
