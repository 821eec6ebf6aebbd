"""
stakepool Configuration

Pool parameters come from three places, later ones overriding earlier ones:
- named presets matching the reference deployments (single, lp, locked)
- a YAML or JSON pool file
- STAKEPOOL_* environment variables

Reward rates are expressed in base units of the reward asset per tick.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from stakepool.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Base units per whole token for 18-decimal assets.
TOKEN_DECIMALS = 18
ONE_TOKEN = 10**TOKEN_DECIMALS

LOG_LEVEL = os.getenv("STAKEPOOL_LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("STAKEPOOL_LOG_FILE", "").strip() or None
ENVIRONMENT = os.getenv("STAKEPOOL_ENV", "development")
DEFAULT_PRESET = os.getenv("STAKEPOOL_PRESET", "single")


@dataclass(frozen=True)
class PoolConfig:
    name: str
    stake_asset: str
    reward_asset: str
    window_start: int
    window_end: int
    reward_rate_per_tick: int
    lock_duration: int = 0

    def __post_init__(self):
        if not self.name:
            raise ConfigurationError("Pool name cannot be empty.")
        if not self.stake_asset or not self.reward_asset:
            raise ConfigurationError("Stake and reward assets must be set.", details={"pool": self.name})
        for key in ("window_start", "window_end", "reward_rate_per_tick", "lock_duration"):
            value = getattr(self, key)
            if not isinstance(value, int) or value < 0:
                raise ConfigurationError(
                    f"{key} must be a non-negative integer, got {value!r}.", details={"pool": self.name}
                )
        if self.window_end <= self.window_start:
            raise ConfigurationError(
                f"window_end ({self.window_end}) must be after window_start ({self.window_start}).",
                details={"pool": self.name},
            )

    @property
    def scheduled_reward(self) -> int:
        """Reward the treasury needs to cover the whole window at the configured rate."""
        return (self.window_end - self.window_start) * self.reward_rate_per_tick

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


PRESETS: Dict[str, PoolConfig] = {
    "single": PoolConfig(
        name="single",
        stake_asset="HAPPY",
        reward_asset="HAPPY",
        window_start=12_020_742,
        window_end=12_884_742,
        reward_rate_per_tick=10 * ONE_TOKEN,
        lock_duration=0,
    ),
    "lp": PoolConfig(
        name="lp",
        stake_asset="HAPPY-LP",
        reward_asset="HAPPY",
        window_start=12_020_742,
        window_end=12_884_742,
        reward_rate_per_tick=100 * ONE_TOKEN,
        lock_duration=0,
    ),
    "locked": PoolConfig(
        name="locked",
        stake_asset="HAPPY",
        reward_asset="HAPPY",
        window_start=12_020_742,
        window_end=22_494_742,
        reward_rate_per_tick=100 * ONE_TOKEN,
        lock_duration=864_000,
    ),
}

_INT_FIELDS = ("window_start", "window_end", "reward_rate_per_tick", "lock_duration")
_ENV_FIELDS = {
    "name": "STAKEPOOL_NAME",
    "stake_asset": "STAKEPOOL_STAKE_ASSET",
    "reward_asset": "STAKEPOOL_REWARD_ASSET",
    "window_start": "STAKEPOOL_WINDOW_START",
    "window_end": "STAKEPOOL_WINDOW_END",
    "reward_rate_per_tick": "STAKEPOOL_REWARD_RATE",
    "lock_duration": "STAKEPOOL_LOCK_DURATION",
}


def get_preset(name: str) -> PoolConfig:
    try:
        return PRESETS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown pool preset '{name}'. Available: {', '.join(sorted(PRESETS))}."
        ) from None


def _coerce(values: Dict[str, Any]) -> Dict[str, Any]:
    coerced: Dict[str, Any] = {}
    for key, value in values.items():
        if key not in _ENV_FIELDS:
            raise ConfigurationError(f"Unknown pool setting '{key}'.")
        if key in _INT_FIELDS:
            try:
                value = int(value)
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(f"{key} must be an integer, got {value!r}.") from exc
        else:
            value = str(value)
        coerced[key] = value
    return coerced


def env_overrides(environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Pool settings supplied through STAKEPOOL_* environment variables."""
    environ = os.environ if environ is None else environ
    found = {
        key: environ[var].strip()
        for key, var in _ENV_FIELDS.items()
        if environ.get(var, "").strip()
    }
    return _coerce(found)


def build_pool_config(
    preset: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> PoolConfig:
    """Starts from a preset, applies explicit overrides, then environment overrides."""
    base = get_preset(preset or DEFAULT_PRESET)
    values = _coerce(overrides or {})
    values.update(env_overrides(environ))
    config = replace(base, **values)
    logger.debug("Resolved pool config %s", config.to_dict())
    return config


def read_config_file(path: str | Path) -> Dict[str, Any]:
    """Parses a YAML (.yaml/.yml) or JSON file into a dict."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Cannot read config file {path}: {exc}") from exc

    try:
        if path.suffix.lower() in (".yaml", ".yml"):
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Config file {path} is not valid: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping at the top level.")
    return data


def load_pool_config(path: str | Path, environ: Optional[Dict[str, str]] = None) -> PoolConfig:
    """
    Loads a pool definition from file.

    The file holds either a top-level `pool` mapping or the pool settings
    themselves; a `preset` key picks the base preset the settings override.
    """
    data = read_config_file(path)
    pool_section = data.get("pool", data)
    if not isinstance(pool_section, dict):
        raise ConfigurationError("'pool' section must be a mapping.")
    settings = dict(pool_section)
    preset = settings.pop("preset", None)
    return build_pool_config(preset=preset, overrides=settings, environ=environ)
