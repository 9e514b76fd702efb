#!/usr/bin/env python3
"""
Test suite for logger.py
Testing the log() front end: level/category detection and message routing
"""

import logging

import pytest
from unittest.mock import Mock, patch

from spacekeeper.utils import logger
from spacekeeper.utils.logger import (
    LEVEL_MAP,
    _detect_category_from_message,
    _detect_level_from_message,
    error,
    info,
    log,
    register_log_viewer,
    set_main_window,
    unregister_log_viewer,
    warning,
)
from spacekeeper.utils.logging import TRACE


@pytest.fixture(autouse=True)
def reset_logger_state():
    """Reset logger module globals before/after each test."""
    original_main = logger._main_window
    original_viewers = list(logger._log_viewers)
    original_app = logger._app_logger

    logger._main_window = None
    logger._log_viewers.clear()
    logger._app_logger = Mock()
    logger._app_logger.should_emit_file.return_value = True
    logger._app_logger.should_emit_gui.return_value = True

    yield

    logger._main_window = original_main
    logger._log_viewers[:] = original_viewers
    logger._app_logger = original_app


class TestLevelMap:

    def test_trace_level_value(self):
        assert TRACE == 5
        assert LEVEL_MAP['trace'] == 5

    def test_warn_alias(self):
        assert LEVEL_MAP['warn'] == LEVEL_MAP['warning']


class TestDetection:

    @pytest.mark.parametrize("message,expected", [
        ("Something failed with ERROR", "error"),
        ("WARNING: low space", "warning"),
        ("CRITICAL: disk gone", "critical"),
        ("DEBUG: probe queued", "debug"),
        ("Plain message", None),
    ])
    def test_level(self, message, expected):
        assert _detect_level_from_message(message) == expected

    def test_category_tag(self):
        assert _detect_category_from_message("[disk:probe] Volume read") == ("disk", "probe", "Volume read")

    def test_category_tag_after_time(self):
        category, subtype, message = _detect_category_from_message("12:00:00 [disk] Volume read")
        assert (category, subtype, message) == ("disk", None, "12:00:00 Volume read")

    def test_no_tag_is_general(self):
        assert _detect_category_from_message("hello")[0] == "general"


class TestLogRouting:

    def test_adds_timestamp(self):
        window = Mock()
        set_main_window(window)
        log("hello", level="info")
        sent = window.add_log_message.call_args[0][0]
        assert sent[2] == ":" and sent.endswith(" hello")

    def test_warning_prefix(self):
        window = Mock()
        set_main_window(window)
        log("low space", level="warning", category="disk")
        assert "WARNING: low space" in window.add_log_message.call_args[0][0]

    def test_file_gets_level_and_category(self):
        log("probe done", level="debug", category="disk")
        _, level, category = logger._app_logger.log_to_file.call_args[0]
        assert level == logging.DEBUG
        assert category == "disk"

    def test_explicit_subtype_stripped(self):
        log("x", level="info", category="disk:probe")
        assert logger._app_logger.log_to_file.call_args[0][2] == "disk"

    def test_file_filter_respected(self):
        logger._app_logger.should_emit_file.return_value = False
        log("quiet", level="info")
        logger._app_logger.log_to_file.assert_not_called()

    def test_gui_filter_respected(self):
        window = Mock()
        set_main_window(window)
        logger._app_logger.should_emit_gui.return_value = False
        log("quiet", level="info")
        window.add_log_message.assert_not_called()

    def test_deleted_window_ignored(self):
        window = Mock()
        window.add_log_message.side_effect = RuntimeError("wrapped C/C++ object has been deleted")
        set_main_window(window)
        log("still fine", level="info")

    def test_errors_go_to_stderr(self, capsys):
        error("boom")
        assert "ERROR: boom" in capsys.readouterr().err

    def test_convenience_wrappers(self):
        with patch('spacekeeper.utils.logger.log') as mock_log:
            info("a", category="disk")
            warning("b")
        assert mock_log.call_args_list[0][1] == {'level': 'info', 'category': 'disk'}
        assert mock_log.call_args_list[1][1]['level'] == 'warning'


class TestLogViewers:

    def test_viewer_receives_messages(self):
        viewer = Mock()
        register_log_viewer(viewer)
        log("hello", level="info", category="disk")
        message, level, category = viewer.append_message.call_args[0]
        assert message.endswith("hello")
        assert (level, category) == ("info", "disk")

    def test_register_once(self):
        viewer = Mock()
        register_log_viewer(viewer)
        register_log_viewer(viewer)
        assert logger._log_viewers.count(viewer) == 1

    def test_unregister_unknown_is_noop(self):
        unregister_log_viewer(Mock())

    def test_dead_viewer_dropped(self):
        viewer = Mock()
        viewer.append_message.side_effect = RuntimeError("deleted")
        register_log_viewer(viewer)
        log("hello", level="info")
        assert viewer not in logger._log_viewers
