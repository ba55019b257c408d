from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError
from .schemas import BoardConfig

CHECK_URL = "http://connectivitycheck.gstatic.com/generate_204"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LATENCYBOARD_", case_sensitive=False)

    APP_TITLE: str = "latencyboard"

    BASE_DIR: Path = Path.cwd()
    CONFIG_FILE: Optional[Path] = None
    CHECK_URL: str = CHECK_URL
    LOG_LEVEL: str = "INFO"

    @property
    def config_path(self) -> Path:
        return self.CONFIG_FILE or self.BASE_DIR / "config.yaml"


def load_board_config(path: Path) -> BoardConfig:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot read {path}: {e}") from e
    try:
        data = yaml.safe_load(raw) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"{path} is not valid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping")
    try:
        return BoardConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"{path}: {e}") from e
