"""Unified logging interface.

``log()`` is the single entry point used across SpaceKeeper. It stamps the
message, works out level and category (explicit arguments win, otherwise
they are detected from the message text), then routes the line to the file
logger, the main window log panel and any open log viewers.
"""

import logging
import re
import sys
from typing import Optional, Tuple

from spacekeeper.utils.format_utils import timestamp
from spacekeeper.utils.logging import get_logger, TRACE


LEVEL_MAP = {
    'trace': TRACE,
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warning': logging.WARNING,
    'warn': logging.WARNING,
    'error': logging.ERROR,
    'critical': logging.CRITICAL,
}

_main_window = None
_log_viewers = []
_app_logger = None
_debug_mode = False

_TIME_RE = re.compile(r"^(\d{2}:\d{2}:\d{2}) ")
_TAG_RE = re.compile(r"\[([a-zA-Z_]+)(?::([a-zA-Z_]+))?\]\s*")


def set_main_window(window):
    global _main_window
    _main_window = window


def register_log_viewer(viewer):
    if viewer not in _log_viewers:
        _log_viewers.append(viewer)


def unregister_log_viewer(viewer):
    try:
        _log_viewers.remove(viewer)
    except ValueError:
        pass


def set_debug_mode(enabled: bool):
    global _debug_mode
    _debug_mode = bool(enabled)


def _get_app_logger():
    global _app_logger
    if _app_logger is None:
        _app_logger = get_logger()
    return _app_logger


def _detect_level_from_message(message: str) -> Optional[str]:
    upper = message.upper()
    if "CRITICAL" in upper:
        return "critical"
    if "ERROR" in upper:
        return "error"
    if "WARN" in upper:
        return "warning"
    if "DEBUG" in upper:
        return "debug"
    if "TRACE" in upper:
        return "trace"
    return None


def _detect_category_from_message(message: str) -> Tuple[str, Optional[str], str]:
    """Return (category, subtype, message without the [tag])."""
    prefix = ""
    body = message
    m = _TIME_RE.match(message)
    if m:
        prefix = m.group(0)
        body = message[m.end():]

    tag = _TAG_RE.match(body)
    if not tag:
        return "general", None, message
    return tag.group(1), tag.group(2), prefix + body[tag.end():]


def log(message: str, level: Optional[str] = None, category: Optional[str] = None):
    """Log a message to file, GUI and viewers.

    Args:
        message: Text to log. A leading HH:MM:SS stamp and [category] tag are honored.
        level: trace/debug/info/warning/error/critical. Detected from text if omitted.
        category: Category name, optionally "category:subtype".
    """
    message = str(message)

    detected_category, subtype, message = _detect_category_from_message(message)
    if category:
        category, _, explicit_subtype = category.partition(":")
        subtype = explicit_subtype or None
    else:
        category = detected_category

    if level is None:
        level = _detect_level_from_message(message) or "info"
    level = level.lower()
    level_num = LEVEL_MAP.get(level, logging.INFO)

    if not _TIME_RE.match(message):
        message = f"{timestamp()} {message}"

    level_tag = logging.getLevelName(level_num)
    stamp, _, body = message.partition(" ")
    if level_num >= logging.WARNING and not body.upper().startswith(f"{level_tag}:"):
        message = f"{stamp} {level_tag}: {body}"

    app_logger = _get_app_logger()

    if app_logger.should_emit_file(category, level_num):
        app_logger.log_to_file(message, level_num, category)

    if level_num >= logging.ERROR or _debug_mode:
        print(message, file=sys.stderr if level_num >= logging.ERROR else sys.stdout)

    if _main_window is not None and app_logger.should_emit_gui(category, level_num):
        try:
            _main_window.add_log_message(message)
        except RuntimeError:
            # Window already deleted on the Qt side
            pass

    for viewer in list(_log_viewers):
        try:
            viewer.append_message(message, level, category)
        except RuntimeError:
            unregister_log_viewer(viewer)


def trace(message: str, category: Optional[str] = None):
    log(message, level="trace", category=category)


def debug(message: str, category: Optional[str] = None):
    log(message, level="debug", category=category)


def info(message: str, category: Optional[str] = None):
    log(message, level="info", category=category)


def warning(message: str, category: Optional[str] = None):
    log(message, level="warning", category=category)


def error(message: str, category: Optional[str] = None):
    log(message, level="error", category=category)


def critical(message: str, category: Optional[str] = None):
    log(message, level="critical", category=category)
