"""Disk space settings stored in the [DiskSpace] section of the INI file."""

import configparser
import os
from dataclasses import dataclass, fields
from typing import Optional

from spacekeeper.core.constants import (
    DEFAULT_MAX_PROBE_WORKERS,
    DISK_SPACE_CHECK_THROTTLE_SECONDS,
    LOG_CATEGORY,
    REPROBE_DELAY_MS,
)
from spacekeeper.core.exceptions import SettingsError
from spacekeeper.utils.logger import log
from spacekeeper.utils.logging import get_config_path


SECTION = 'DiskSpace'

# Schema for disk space settings
# Each setting has: key, description, default, type, and optional constraints
DISK_SPACE_SETTINGS = [
    {
        "key": "warning_enabled",
        "description": "Check remaining disk space before starting or resuming a transfer",
        "default": True,
        "type": "bool"
    },
    {
        "key": "throttle_seconds",
        "description": "Minimum seconds between disk space probes on the status refresh tick",
        "default": DISK_SPACE_CHECK_THROTTLE_SECONDS,
        "type": "float",
        "min": 0.0,
        "max": 600.0
    },
    {
        "key": "reprobe_delay_ms",
        "description": "Delay after deleting old transfers before re-checking space",
        "default": REPROBE_DELAY_MS,
        "type": "int",
        "min": 0,
        "max": 60000
    },
    {
        "key": "max_probe_workers",
        "description": "Background threads used for disk space probes",
        "default": DEFAULT_MAX_PROBE_WORKERS,
        "type": "int",
        "min": 1,
        "max": 16
    },
]

_SCHEMA = {s["key"]: s for s in DISK_SPACE_SETTINGS}


def _convert(spec: dict, raw):
    kind = spec["type"]
    if kind == "bool":
        if isinstance(raw, bool):
            return raw
        text = str(raw).strip().lower()
        if text in ('true', 'yes', 'on', '1'):
            return True
        if text in ('false', 'no', 'off', '0'):
            return False
        raise ValueError(f"not a boolean: {raw!r}")
    if kind == "int":
        return int(raw)
    if kind == "float":
        return float(raw)
    return raw


@dataclass
class DiskSpaceSettings:
    warning_enabled: bool = True
    throttle_seconds: float = DISK_SPACE_CHECK_THROTTLE_SECONDS
    reprobe_delay_ms: int = REPROBE_DELAY_MS
    max_probe_workers: int = DEFAULT_MAX_PROBE_WORKERS

    def validate(self):
        """Raise SettingsError if a value is outside its schema range."""
        for f in fields(self):
            spec = _SCHEMA[f.name]
            value = getattr(self, f.name)
            if "min" in spec and value < spec["min"]:
                raise SettingsError(f"{f.name}={value} is below minimum {spec['min']}", key=f.name)
            if "max" in spec and value > spec["max"]:
                raise SettingsError(f"{f.name}={value} is above maximum {spec['max']}", key=f.name)

    @classmethod
    def load_from_config(cls, config_file: Optional[str] = None) -> 'DiskSpaceSettings':
        """Load settings from the INI file, keeping defaults for missing or bad values."""
        config_file = config_file or get_config_path()
        settings = cls()
        if not os.path.exists(config_file):
            return settings

        config = configparser.ConfigParser()
        try:
            config.read(config_file, encoding='utf-8')
        except configparser.Error as e:
            log(f"Could not parse {config_file}: {e}", level="warning", category=LOG_CATEGORY)
            return settings
        if not config.has_section(SECTION):
            return settings

        for key, raw in config.items(SECTION):
            spec = _SCHEMA.get(key)
            if spec is None:
                log(f"Ignoring unknown disk space setting '{key}'", level="debug", category=LOG_CATEGORY)
                continue
            try:
                setattr(settings, key, _convert(spec, raw))
            except ValueError:
                log(f"Invalid value for {key}: {raw!r}, using default {spec['default']}",
                    level="warning", category=LOG_CATEGORY)

        try:
            settings.validate()
        except SettingsError as e:
            log(f"{e.message}; using defaults for disk space settings",
                level="warning", category=LOG_CATEGORY)
            return cls()
        return settings

    def save_to_config(self, config_file: Optional[str] = None):
        """Write non-default values to the INI file."""
        self.validate()
        config_file = config_file or get_config_path()
        config = configparser.ConfigParser()
        if os.path.exists(config_file):
            config.read(config_file, encoding='utf-8')

        if config.has_section(SECTION):
            config.remove_section(SECTION)

        non_defaults = {
            f.name: getattr(self, f.name) for f in fields(self)
            if getattr(self, f.name) != _SCHEMA[f.name]["default"]
        }
        if non_defaults:
            config.add_section(SECTION)
            for key, value in non_defaults.items():
                config.set(SECTION, key, str(value).lower() if isinstance(value, bool) else str(value))

        os.makedirs(os.path.dirname(config_file) or ".", exist_ok=True)
        with open(config_file, 'w', encoding='utf-8') as f:
            config.write(f)
