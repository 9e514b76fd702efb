"""File logging backend for SpaceKeeper.

AppLogger wraps a stdlib ``logging`` logger with a rotating file handler and
the per-category filters used by the ``log()`` front end in
``spacekeeper.utils.logger``. Settings live in the ``[LOGGING]`` section of
the application INI file.
"""

import configparser
import logging
import os
import re
import threading
from logging.handlers import RotatingFileHandler
from typing import Optional


TRACE = 5
logging.addLevelName(TRACE, "TRACE")

CATEGORIES = ("general", "disk", "transfers", "ui")


def get_base_path() -> str:
    """Directory holding the INI file and logs (overridable with SPACEKEEPER_HOME)."""
    return os.environ.get("SPACEKEEPER_HOME") or os.path.join(os.path.expanduser("~"), ".spacekeeper")


def get_config_path() -> str:
    return os.path.join(get_base_path(), "spacekeeper.ini")


class AppLogger:
    """Rotating file logger with level and category gates."""

    TRACE = TRACE

    DEFAULTS = {
        'enabled': 'true',
        'rotation': 'size',
        'max_bytes': str(5 * 1024 * 1024),
        'backup_count': '7',
        'level_file': 'INFO',
        'level_gui': 'INFO',
    }

    LEVEL_MAP = {
        'TRACE': TRACE,
        'DEBUG': logging.DEBUG,
        'INFO': logging.INFO,
        'WARNING': logging.WARNING,
        'ERROR': logging.ERROR,
        'CRITICAL': logging.CRITICAL,
    }

    _TIME_PREFIX = re.compile(r"^\d{2}:\d{2}:\d{2} ")

    def __init__(self, config_path: Optional[str] = None, log_dir: Optional[str] = None):
        self._config_path = config_path or get_config_path()
        self._log_dir = log_dir or os.path.join(get_base_path(), "logs")
        self._settings = dict(self.DEFAULTS)
        self._lock = threading.Lock()
        self._handler: Optional[logging.Handler] = None
        self._logger = logging.getLogger("spacekeeper")
        self._logger.setLevel(TRACE)
        self._logger.propagate = False
        self._load_settings()
        self._apply_settings()

    def _load_settings(self):
        config = configparser.ConfigParser()
        if os.path.exists(self._config_path):
            try:
                config.read(self._config_path, encoding='utf-8')
            except configparser.Error:
                return
            if config.has_section('LOGGING'):
                for key, value in config.items('LOGGING'):
                    self._settings[key] = value

    def _save_settings(self):
        config = configparser.ConfigParser()
        if os.path.exists(self._config_path):
            config.read(self._config_path, encoding='utf-8')
        if not config.has_section('LOGGING'):
            config.add_section('LOGGING')
        for key, value in self._settings.items():
            config.set('LOGGING', key, str(value))
        os.makedirs(os.path.dirname(self._config_path), exist_ok=True)
        with open(self._config_path, 'w', encoding='utf-8') as f:
            config.write(f)

    def _apply_settings(self):
        settings = self.get_settings()
        self._file_level = self.LEVEL_MAP.get(str(settings['level_file']).upper(), logging.INFO)
        self._gui_level = self.LEVEL_MAP.get(str(settings['level_gui']).upper(), logging.INFO)

        with self._lock:
            if self._handler is not None:
                self._logger.removeHandler(self._handler)
                self._handler.close()
                self._handler = None
            if not settings['enabled']:
                return
            try:
                os.makedirs(self._log_dir, exist_ok=True)
                handler = RotatingFileHandler(
                    os.path.join(self._log_dir, "spacekeeper.log"),
                    maxBytes=settings['max_bytes'],
                    backupCount=settings['backup_count'],
                    encoding='utf-8',
                    delay=True,
                )
            except OSError:
                # Unwritable log dir: GUI and console routing still work
                return
            handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(category)s] %(message)s"))
            self._logger.addHandler(handler)
            self._handler = handler

    def get_settings(self) -> dict:
        """Return settings with booleans and integers normalized."""
        normalized = {}
        for key, value in self._settings.items():
            text = str(value).strip()
            if text.lower() in ('true', 'false'):
                normalized[key] = text.lower() == 'true'
            elif key in ('max_bytes', 'backup_count'):
                try:
                    normalized[key] = int(text)
                except ValueError:
                    normalized[key] = int(self.DEFAULTS[key])
            elif key.startswith('cats_'):
                normalized[key] = text.lower() in ('1', 'yes', 'on')
            else:
                normalized[key] = text
        for key, default in self.DEFAULTS.items():
            normalized.setdefault(key, default)
        return normalized

    def update_settings(self, **kwargs):
        self._settings.update({k: str(v) for k, v in kwargs.items()})
        self._save_settings()
        self._apply_settings()

    def _category_enabled(self, target: str, category: str) -> bool:
        return bool(self.get_settings().get(f'cats_{target}_{category}', True))

    def should_emit_gui(self, category: str, level: int) -> bool:
        if level < self._gui_level:
            return False
        return self._category_enabled('gui', category)

    def should_emit_file(self, category: str, level: int) -> bool:
        if level <= TRACE:
            return False
        if str(self._settings.get('enabled', 'true')).lower() != 'true':
            return False
        if level < self._file_level:
            return False
        return self._category_enabled('file', category)

    def log_to_file(self, message: str, level: int, category: str = "general"):
        self._logger.log(level, self._strip_leading_time(message), extra={'category': category})

    @classmethod
    def _strip_leading_time(cls, message: str) -> str:
        return cls._TIME_PREFIX.sub("", message, count=1)

    def close(self):
        with self._lock:
            if self._handler is not None:
                self._logger.removeHandler(self._handler)
                self._handler.close()
                self._handler = None


_instance: Optional[AppLogger] = None
_instance_lock = threading.Lock()


def get_logger() -> AppLogger:
    """Return the process-wide AppLogger."""
    global _instance
    with _instance_lock:
        if _instance is None:
            _instance = AppLogger()
        return _instance
