from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


# backend/lightswitch/settings.py -> project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


def _env_bool(name: str, default: str = "false") -> bool:
    return (os.getenv(name) or default).strip().lower() == "true"


def debug_enabled() -> bool:
    # Per-pulse logging is noisy; gate it behind an env flag.
    return _env_bool("SWITCH_DEBUG")


@dataclass(frozen=True)
class Settings:
    config_path: Path
    use_mock_pwm: bool
    pwm_chip: int
    pwm_channel: int
    pwm_frequency_hz: float
    host: str
    port: int


def _load_env() -> None:
    for env_path in (_PROJECT_ROOT / ".env", Path.cwd() / ".env"):
        if env_path.exists():
            # Do NOT override already-set environment variables (shell should win).
            load_dotenv(dotenv_path=env_path, override=False)
            return


def load_settings() -> Settings:
    """
    Central runtime configuration.

    Env:
      - SWITCH_CONFIG_PATH: YAML file with api key, calibration, pending schedule
      - USE_MOCK_PWM: true|false (default false); record pulses instead of touching hardware
      - PWM_CHIP / PWM_CHANNEL: sysfs pwmchip and channel (default 0 / 0)
      - PWM_FREQUENCY_HZ: servo frame rate (default 50)
      - SWITCH_HOST / SWITCH_PORT: uvicorn bind address
    """
    _load_env()
    return Settings(
        config_path=Path((os.getenv("SWITCH_CONFIG_PATH") or "config.yaml").strip()),
        use_mock_pwm=_env_bool("USE_MOCK_PWM"),
        pwm_chip=int(os.getenv("PWM_CHIP", "0")),
        pwm_channel=int(os.getenv("PWM_CHANNEL", "0")),
        pwm_frequency_hz=float(os.getenv("PWM_FREQUENCY_HZ", "50")),
        host=(os.getenv("SWITCH_HOST") or "0.0.0.0").strip(),
        port=int(os.getenv("SWITCH_PORT", "8000")),
    )
