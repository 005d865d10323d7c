from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from carefollow.core.config import AppPaths
from carefollow.infrastructure.db.sqlite import initialize_schema


@dataclass(slots=True)
class InitResult:
    paths_created: list[Path]
    db_path: Path


class ProjectService:
    def __init__(self, paths: AppPaths) -> None:
        self.paths = paths

    def init_project(self) -> InitResult:
        paths_created: list[Path] = []

        if not self.paths.data_dir.exists():
            paths_created.append(self.paths.data_dir)
        self.paths.data_dir.mkdir(parents=True, exist_ok=True)

        initialize_schema(self.paths.db_path)

        return InitResult(paths_created=paths_created, db_path=self.paths.db_path)

    def is_initialized(self) -> bool:
        return self.paths.db_path.exists()
