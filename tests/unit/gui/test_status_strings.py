"""Tests for the disk space status line."""

from spacekeeper.gui.status_strings import disk_space_status


GB = 1024 ** 3


def test_none_when_not_paused(make_transfer):
    assert disk_space_status(make_transfer()) is None


def test_paused_shows_figures(make_transfer):
    t = make_transfer(paused=True)
    state = t.disk_state
    state.disk_space_used_by_transfers = 12 * GB
    state.disk_space_needed = int(3.5 * GB)
    state.disk_space_available = 1 * GB
    state.disk_space_total = 500 * GB

    assert disk_space_status(t) == (
        "Not enough disk space. Used for transfers 12.0 GiB, Need 3.5 GiB, "
        "Available 1.0 GiB of 500.0 GiB"
    )


def test_paused_before_first_probe(make_transfer):
    text = disk_space_status(make_transfer(paused=True))
    assert text.endswith("Available 0 B of 0 B")
