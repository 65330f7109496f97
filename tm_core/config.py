from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field

from tm_core.constants import (
    DEFAULT_CANDIDATE_LIMIT,
    DEFAULT_DB_FILENAME,
    DEFAULT_MAX_RESULTS,
    DEFAULT_MIN_MATCH_PERCENT,
)


class EngineConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    db_path: Path = Field(default=Path(DEFAULT_DB_FILENAME))
    min_match_percent: int = Field(default=DEFAULT_MIN_MATCH_PERCENT, ge=0, le=100)
    max_results: int = Field(default=DEFAULT_MAX_RESULTS, ge=1)
    candidate_limit: int = Field(default=DEFAULT_CANDIDATE_LIMIT, ge=1)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    log_format: Literal["console", "json"] = "console"

    def resolved_db_path(self, config_path: Path | None = None) -> Path:
        """Relative database paths are taken relative to the config file."""
        if self.db_path.is_absolute() or config_path is None:
            return self.db_path
        return Path(config_path).parent / self.db_path


def write_config(config_path: Path, config: EngineConfig) -> None:
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(config.model_dump(mode="json"), handle, sort_keys=False)


def read_config(config_path: Path) -> EngineConfig:
    with config_path.open("r", encoding="utf-8") as handle:
        content = yaml.safe_load(handle) or {}
    return EngineConfig.model_validate(content)


def load_config(config_path: Path | None = None) -> EngineConfig:
    if config_path is None:
        return EngineConfig()
    return read_config(Path(config_path))
