"""Tests for CapacityProber."""

import os
import pytest
from unittest.mock import patch

from spacekeeper.core.capacity import CapacityProber
from spacekeeper.core.exceptions import ProbeFailure


def _make_usage(free_bytes, total_bytes=1_000_000_000_000):
    """Helper to create a mock disk_usage result."""
    return type('Usage', (), {
        'total': total_bytes,
        'used': total_bytes - free_bytes,
        'free': free_bytes,
    })()


class TestProbe:

    def test_reports_free_total_and_volume(self, tmp_path):
        with patch('spacekeeper.core.capacity.shutil.disk_usage',
                   return_value=_make_usage(5_000_000_000)):
            info = CapacityProber().probe(str(tmp_path))
        assert info.available_bytes == 5_000_000_000
        assert info.total_bytes == 1_000_000_000_000
        assert info.volume_identity == os.stat(tmp_path).st_dev

    def test_real_directory(self, tmp_path):
        info = CapacityProber().probe(str(tmp_path))
        assert info.total_bytes > 0
        assert 0 <= info.available_bytes <= info.total_bytes

    def test_missing_path_raises_probe_failure(self, tmp_path):
        missing = str(tmp_path / "nope")
        with pytest.raises(ProbeFailure) as exc:
            CapacityProber().probe(missing)
        assert exc.value.path == missing

    def test_permission_error_raises_probe_failure(self, tmp_path):
        with patch('spacekeeper.core.capacity.shutil.disk_usage',
                   side_effect=PermissionError("denied")):
            with pytest.raises(ProbeFailure):
                CapacityProber().probe(str(tmp_path))


class TestVolumeIdentity:

    def test_same_directory_same_token(self, tmp_path):
        sub = tmp_path / "sub"
        sub.mkdir()
        prober = CapacityProber()
        assert prober.volume_identity(str(tmp_path)) == prober.volume_identity(str(sub))

    def test_missing_path_returns_none(self, tmp_path):
        assert CapacityProber().volume_identity(str(tmp_path / "missing")) is None
