"""Ideaflow configuration management."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SAVED_KEYS = (
    "log_level",
    "wal_mode",
    "bulk_limit",
    "queue_page_default",
    "queue_page_max",
)


@dataclass
class Config:
    """Ideaflow configuration."""

    workspace_path: Path = field(default_factory=lambda: Path.home() / ".ideaflow")
    log_level: str = "INFO"
    wal_mode: bool = True

    # Hard bound on ids per bulk call
    bulk_limit: int = 100

    queue_page_default: int = 10
    queue_page_max: int = 100

    @classmethod
    def load(cls, workspace_path: Path | None = None) -> Config:
        """Load config from YAML file, env vars, then defaults."""
        config = cls()

        if workspace_path:
            config.workspace_path = workspace_path

        env_path = os.environ.get("IDEAFLOW_WORKSPACE")
        if env_path and workspace_path is None:
            config.workspace_path = Path(env_path)

        config_file = config.workspace_path / "config.yaml"
        if config_file.exists():
            with open(config_file) as f:
                data = yaml.safe_load(f) or {}
            for key, value in data.items():
                if not hasattr(config, key):
                    logger.warning("Ignoring unknown config key: %s", key)
                    continue
                expected_type = type(getattr(config, key))
                if expected_type is bool and isinstance(value, str):
                    setattr(config, key, value.strip().lower() in ("1", "true", "yes", "on"))
                elif isinstance(getattr(config, key), Path):
                    setattr(config, key, Path(value))
                else:
                    setattr(config, key, expected_type(value))

        # Env overrides the file
        env_log = os.environ.get("IDEAFLOW_LOG_LEVEL")
        if env_log:
            config.log_level = env_log

        env_bulk = os.environ.get("IDEAFLOW_BULK_LIMIT")
        if env_bulk:
            config.bulk_limit = int(env_bulk)

        config.validate()
        return config

    def validate(self) -> None:
        if self.bulk_limit < 1:
            raise ValueError(f"bulk_limit must be positive, got {self.bulk_limit}")
        if self.queue_page_max < 1:
            raise ValueError(f"queue_page_max must be positive, got {self.queue_page_max}")
        if not 1 <= self.queue_page_default <= self.queue_page_max:
            raise ValueError(
                f"queue_page_default must be between 1 and {self.queue_page_max}, "
                f"got {self.queue_page_default}"
            )

    @property
    def db_path(self) -> Path:
        return self.workspace_path / "ideaflow.db"

    def clamp_page(self, limit: int | None, offset: int | None) -> tuple[int, int]:
        """Fill in the default page size and clamp limit and offset to valid values."""
        if not limit or limit < 1:
            limit = self.queue_page_default
        return min(limit, self.queue_page_max), max(offset or 0, 0)

    def configure_logging(self) -> None:
        logging.basicConfig(
            level=self.log_level.upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    def save(self) -> None:
        """Save current config to YAML."""
        self.workspace_path.mkdir(parents=True, exist_ok=True)
        config_file = self.workspace_path / "config.yaml"
        data = {key: getattr(self, key) for key in _SAVED_KEYS}
        with open(config_file, "w") as f:
            yaml.dump(data, f, default_flow_style=False)
