# Disk space dialogs and window wiring

from .confirmation_gate import ConfirmationGate  # noqa: F401
from .message_presenter import MessagePresenter, QtMessagePresenter  # noqa: F401
