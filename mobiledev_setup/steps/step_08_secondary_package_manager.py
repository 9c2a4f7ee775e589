from __future__ import annotations

import logging

from ..errors import StructuralError
from ..lib.pkg import which
from .base import Step, StepContext

logger = logging.getLogger(__name__)


class SecondaryPackageManagerStep(Step):
    """Report whether the optional second package manager (winget, snap) is usable."""

    step_id = "08_secondary_package_manager"
    title = "Secondary package manager"
    fatal = False
    retryable = False

    def is_satisfied(self, ctx: StepContext) -> bool:
        name = ctx.adapter.secondary_package_manager
        return name is None or which(name, ctx.tool_env()) is not None

    def run(self, ctx: StepContext) -> None:
        raise StructuralError(f"{ctx.adapter.secondary_package_manager} is not available (optional)")
