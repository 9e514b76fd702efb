"""Non-blocking message boxes for disk space prompts.

The admission flow never waits on a dialog. Presenters show the message and
call back when the user closes it, possibly long after other admission
cycles have run.
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Sequence

from PyQt6.QtWidgets import QMessageBox


class MessagePresenter(ABC):
    """UI collaborator used by the confirmation gate."""

    @abstractmethod
    def show_error(self, title: str, message: str, on_closed: Callable[[], None]) -> None:
        """Show an acknowledge-only message."""

    @abstractmethod
    def show_confirmation(self, title: str, message: str, options: Sequence[str],
                          on_decision: Callable[[int], None]) -> None:
        """Show a choice; ``on_decision`` receives the index of the chosen option.

        Closing the dialog without choosing reports the last option.
        """


class QtMessagePresenter(MessagePresenter):
    """Window-modal QMessageBox sheets opened with ``open()`` so the event loop keeps running."""

    def __init__(self, parent_window=None):
        self._parent = parent_window
        self._open_boxes: List[QMessageBox] = []

    def _track(self, box: QMessageBox):
        self._open_boxes.append(box)

    def _release(self, box: QMessageBox):
        try:
            self._open_boxes.remove(box)
        except ValueError:
            pass
        box.deleteLater()

    def show_error(self, title: str, message: str, on_closed: Callable[[], None]) -> None:
        box = QMessageBox(self._parent)
        box.setIcon(QMessageBox.Icon.Warning)
        box.setWindowTitle(title)
        box.setText(title)
        box.setInformativeText(message)
        box.setStandardButtons(QMessageBox.StandardButton.Ok)

        def finished(_result):
            self._release(box)
            on_closed()

        box.finished.connect(finished)
        self._track(box)
        box.open()

    def show_confirmation(self, title: str, message: str, options: Sequence[str],
                          on_decision: Callable[[int], None]) -> None:
        box = QMessageBox(self._parent)
        box.setIcon(QMessageBox.Icon.Warning)
        box.setWindowTitle(title)
        box.setText(title)
        box.setInformativeText(message)

        buttons = []
        for index, text in enumerate(options):
            if index == len(options) - 1:
                role = QMessageBox.ButtonRole.RejectRole
            elif index == 0:
                role = QMessageBox.ButtonRole.DestructiveRole
            else:
                role = QMessageBox.ButtonRole.ActionRole
            buttons.append(box.addButton(text, role))
        if buttons:
            box.setDefaultButton(buttons[-1])
            box.setEscapeButton(buttons[-1])

        def finished(_result):
            clicked = box.clickedButton()
            index = buttons.index(clicked) if clicked in buttons else len(options) - 1
            self._release(box)
            on_decision(index)

        box.finished.connect(finished)
        self._track(box)
        box.open()

    @property
    def open_count(self) -> int:
        return len(self._open_boxes)
