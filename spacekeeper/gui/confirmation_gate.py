"""Confirmation gate for disk space evictions.

Words the "not enough space" error and the delete prompt, and keeps at most
one of them outstanding per key (transfer id, or incoming path for RPC adds).
A request for a key that already has a dialog up is dropped, not queued.
"""

from typing import Any, Callable, Dict, Optional

from spacekeeper.core.constants import LOG_CATEGORY, NO_GROUP
from spacekeeper.core.models import ConfirmationKind, ConfirmationPayload, Decision
from spacekeeper.gui.message_presenter import MessagePresenter
from spacekeeper.utils.format_utils import format_binary_size
from spacekeeper.utils.logger import log


ERROR_TITLE = "Not enough disk space"
DELETE_TITLE = "Low Disk Space"
DELETE_OPTIONS = ("Delete", "Cancel")

DecisionCallback = Callable[[Decision], None]


def default_group_name(group_id: int) -> str:
    if group_id == NO_GROUP:
        return "No Group"
    return f"Group {group_id}"


def format_insufficient_message(payload: ConfirmationPayload) -> str:
    needed = format_binary_size(payload.needed_bytes)
    if not payload.candidates:
        return (f"Need {needed} to add this transfer, but no old transfers in group "
                f"'{payload.group_name}' can be deleted to free space.")
    freed = format_binary_size(payload.reclaimable_bytes)
    return (f"Need {needed} to add this transfer, but only {freed} could be freed "
            f"from group '{payload.group_name}'.")


def format_delete_message(payload: ConfirmationPayload) -> str:
    lines = "".join(
        f"\n  • {t.name} ({format_binary_size(t.size_when_done)})" for t in payload.candidates
    )
    return (f"Need {format_binary_size(payload.needed_bytes)} to add this transfer; "
            f"will delete these ({format_binary_size(payload.reclaimable_bytes)} freed):"
            f"{lines}\n\nContinue with deletion?")


class ConfirmationGate:
    """Routes disk space decisions to the user, one dialog per key at a time."""

    def __init__(self, presenter: MessagePresenter,
                 group_name_for: Optional[Callable[[int], str]] = None):
        self._presenter = presenter
        self._group_name_for = group_name_for or default_group_name
        self._pending: Dict[Any, ConfirmationKind] = {}

    def group_name(self, group_id: int) -> str:
        return self._group_name_for(group_id)

    def is_pending(self, key) -> bool:
        return key in self._pending

    def request_confirmation(self, kind: ConfirmationKind, payload: ConfirmationPayload,
                             on_decision: Optional[DecisionCallback] = None) -> bool:
        """Present ``payload`` as an error or a delete prompt.

        ``on_decision`` receives ACKNOWLEDGED for errors, CONFIRMED or
        CANCELLED for delete prompts. Returns False (and shows nothing) if a
        dialog for ``payload.key`` is already outstanding.
        """
        key = payload.key
        if key in self._pending:
            log(f"Disk space dialog already open for {key}; ignoring {kind.value} request",
                level="debug", category=LOG_CATEGORY)
            return False
        self._pending[key] = kind

        if kind is ConfirmationKind.ERROR:
            message = format_insufficient_message(payload)
            log(f"{ERROR_TITLE}: {message}", level="warning", category=LOG_CATEGORY)
            self._presenter.show_error(
                ERROR_TITLE, message,
                on_closed=lambda: self._resolve(key, Decision.ACKNOWLEDGED, on_decision))
        else:
            message = format_delete_message(payload)
            log(f"Asking to delete {len(payload.candidates)} transfer(s) to free "
                f"{format_binary_size(payload.reclaimable_bytes)}",
                level="info", category=LOG_CATEGORY)
            self._presenter.show_confirmation(
                DELETE_TITLE, message, DELETE_OPTIONS,
                on_decision=lambda index: self._resolve(
                    key, Decision.CONFIRMED if index == 0 else Decision.CANCELLED, on_decision))
        return True

    def _resolve(self, key, decision: Decision, on_decision: Optional[DecisionCallback]):
        self._pending.pop(key, None)
        log(f"Disk space dialog for {key} closed: {decision.value}", level="debug", category=LOG_CATEGORY)
        if on_decision is not None:
            on_decision(decision)
