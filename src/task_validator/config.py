"""CLI configuration file and HTTP service settings."""

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from .rules import DEFAULT_RULES_FILE
from .validator import DEFAULT_MODEL, DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)

CONFIG_HOME_ENV = "TASK_VALIDATOR_HOME"
CONFIG_FILENAME = "config.json"


def get_config_dir() -> Path:
    """Config directory: $TASK_VALIDATOR_HOME or ~/.task-validator."""
    override = os.environ.get(CONFIG_HOME_ENV)
    if override:
        return Path(override)
    return Path.home() / ".task-validator"


def get_config_path() -> Path:
    return get_config_dir() / CONFIG_FILENAME


@dataclass
class CliConfig:
    """Persisted CLI defaults; command-line options take precedence."""

    model: str = DEFAULT_MODEL
    default_branch: str = "main"
    output_dir: str = "reports"
    rules_file: str = DEFAULT_RULES_FILE
    logs_dir: str = "logs"
    timeout: int = DEFAULT_TIMEOUT


def load_config(path: Path | None = None) -> CliConfig:
    """
    Load the CLI config, falling back to defaults.

    An unreadable or malformed file is reported and ignored.
    """
    path = path or get_config_path()
    if not path.exists():
        return CliConfig()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Error loading configuration from %s: %s", path, e)
        return CliConfig()

    if not isinstance(data, dict):
        logger.warning("Ignoring configuration in %s: not a JSON object", path)
        return CliConfig()

    known = {f.name for f in fields(CliConfig)}
    return CliConfig(**{k: v for k, v in data.items() if k in known})


def save_config(config: CliConfig, path: Path | None = None) -> Path:
    """Write the CLI config. Raises OSError on failure."""
    path = path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(config), indent=2), encoding="utf-8")
    return path


def clear_config(path: Path | None = None) -> bool:
    """Delete the CLI config. Returns True if a file was removed."""
    path = path or get_config_path()
    if path.exists():
        path.unlink()
        return True
    return False


class Settings(BaseSettings):
    """
    HTTP service settings loaded from environment variables.

    Variables use the ``TASK_VALIDATOR_`` prefix, e.g. ``TASK_VALIDATOR_MODEL``.
    """

    model_config = SettingsConfigDict(env_prefix="TASK_VALIDATOR_")

    MODEL: str = DEFAULT_MODEL
    DEFAULT_BASE_BRANCH: str = "main"
    REPORTS_DIR: str = "reports"
    LOGS_DIR: str = "logs"
    VALIDATION_TIMEOUT: int = DEFAULT_TIMEOUT  # seconds, whole validation run
    ENVIRONMENT: str = "development"


@lru_cache
def get_settings() -> Settings:
    return Settings()
