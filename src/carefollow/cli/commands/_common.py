from __future__ import annotations

from carefollow.application.services.project_service import ProjectService
from carefollow.cli.context import CLIContext
from carefollow.core.errors import ProjectNotInitializedError


def require_initialized_project(ctx: CLIContext) -> None:
    project_service = ProjectService(ctx.paths)
    if not project_service.is_initialized():
        raise ProjectNotInitializedError(
            f"Project is not initialized. Run 'carefollow init' first in {ctx.paths.project_root}"
        )
    project_service.init_project()
