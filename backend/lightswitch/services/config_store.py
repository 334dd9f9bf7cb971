"""
On-disk config: API key, calibration and the pending schedule, as YAML.

The file is read once at startup and rewritten whenever settings or the
schedule change. Writes go through a temp file + rename so a crash mid-write
never leaves a truncated config behind.
"""
from __future__ import annotations

import base64
import os
import secrets
from pathlib import Path

import yaml
from pydantic import ValidationError as PydanticValidationError

from lightswitch.errors import ConfigIOError
from lightswitch.schemas.common import APIModel
from lightswitch.schemas.schedule import ScheduleResponse
from lightswitch.schemas.settings import Calibration, DEFAULT_CALIBRATION


class Config(APIModel):
    api_key: str
    calibration: Calibration
    scheduled: ScheduleResponse | None = None


def generate_api_key() -> str:
    return base64.b64encode(secrets.token_bytes(32)).decode("ascii")


class ConfigStore:
    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> Config:
        """
        Read the config file, creating it (with a fresh API key) on first run.

        Raises ConfigIOError if the file exists but cannot be read or parsed.
        """
        if not self.path.exists():
            config = Config(api_key=generate_api_key(), calibration=DEFAULT_CALIBRATION)
            self.save(config)
            print(f"[CONFIG] Created {self.path} with a new API key")
            return config

        try:
            raw = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigIOError(f"Failed to read config {self.path}: {e}")
        if not isinstance(raw, dict):
            raise ConfigIOError(f"Config {self.path} must be a mapping, got {type(raw).__name__}")

        try:
            return Config.model_validate(raw)
        except PydanticValidationError as e:
            fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
            raise ConfigIOError(f"Invalid config {self.path}: {e}", fields=fields)

    def save(self, config: Config) -> None:
        data = config.model_dump(mode="json")
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            if self.path.parent and not self.path.parent.exists():
                self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            raise ConfigIOError(f"Failed to write config {self.path}: {e}")
