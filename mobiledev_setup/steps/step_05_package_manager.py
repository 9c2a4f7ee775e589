from __future__ import annotations

import logging

from ..lib.pkg import bootstrap_manager, manager_present
from .base import Step, StepContext

logger = logging.getLogger(__name__)


class PackageManagerStep(Step):
    step_id = "05_package_manager"
    title = "Package manager"

    def is_satisfied(self, ctx: StepContext) -> bool:
        pm = ctx.adapter.package_manager()
        return pm is None or manager_present(pm, ctx.tool_env())

    def run(self, ctx: StepContext) -> None:
        pm = ctx.adapter.package_manager()
        assert pm is not None
        bootstrap_manager(ctx.adapter, pm, ctx.tool_env())
        # Installers update the persisted PATH, not ours.
        ctx.env.refresh("PATH")
