"""Tests for QtMessagePresenter using offscreen message boxes."""

import pytest
from PyQt6.QtWidgets import QApplication, QMessageBox

from spacekeeper.gui.message_presenter import QtMessagePresenter


def _open_box():
    for widget in QApplication.topLevelWidgets():
        if isinstance(widget, QMessageBox) and widget.isVisible():
            return widget
    return None


@pytest.fixture
def presenter(qapp):
    return QtMessagePresenter()


class TestConfirmation:

    def test_does_not_block(self, presenter, qtbot):
        decisions = []
        presenter.show_confirmation("Low Disk Space", "Delete?", ["Delete", "Cancel"], decisions.append)
        assert decisions == []
        assert presenter.open_count == 1
        qtbot.waitUntil(lambda: _open_box() is not None, timeout=2000)
        _open_box().reject()

    def test_delete_button(self, presenter, qtbot):
        decisions = []
        presenter.show_confirmation("Low Disk Space", "Delete?", ["Delete", "Cancel"], decisions.append)
        qtbot.waitUntil(lambda: _open_box() is not None, timeout=2000)
        box = _open_box()
        delete = next(b for b in box.buttons() if b.text() == "Delete")
        delete.click()
        qtbot.waitUntil(lambda: decisions == [0], timeout=2000)
        assert presenter.open_count == 0

    def test_escape_is_cancel(self, presenter, qtbot):
        decisions = []
        presenter.show_confirmation("Low Disk Space", "Delete?", ["Delete", "Cancel"], decisions.append)
        qtbot.waitUntil(lambda: _open_box() is not None, timeout=2000)
        _open_box().reject()
        qtbot.waitUntil(lambda: decisions == [1], timeout=2000)


class TestError:

    def test_closed_callback(self, presenter, qtbot):
        closed = []
        presenter.show_error("Not enough disk space", "Need 6.0 GiB", lambda: closed.append(True))
        qtbot.waitUntil(lambda: _open_box() is not None, timeout=2000)
        _open_box().accept()
        qtbot.waitUntil(lambda: closed == [True], timeout=2000)
        assert presenter.open_count == 0
