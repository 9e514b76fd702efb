"""
Exception hierarchy for SpaceKeeper.
Each failure mode of a disk space admission cycle has its own type.
"""

from typing import Iterable, Optional


class SpaceKeeperError(Exception):
    """Base exception for all SpaceKeeper errors"""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ProbeFailure(SpaceKeeperError):
    """Raised when free space or volume identity cannot be read for a path"""
    def __init__(self, message: str, path: str = None, details: dict = None):
        super().__init__(message, details)
        self.path = path


class InsufficientCandidates(SpaceKeeperError):
    """Raised when the volume/group holds too little reclaimable data"""
    def __init__(self, message: str, needed_bytes: int = 0, reclaimable_bytes: int = 0,
                 group_name: str = None, details: dict = None):
        super().__init__(message, details)
        self.needed_bytes = needed_bytes
        self.reclaimable_bytes = reclaimable_bytes
        self.group_name = group_name


class DeletionIncomplete(SpaceKeeperError):
    """Raised when the engine could not delete every eviction candidate"""
    def __init__(self, message: str, failed_ids: Optional[Iterable[str]] = None, details: dict = None):
        super().__init__(message, details)
        self.failed_ids = list(failed_ids or [])


class SettingsError(SpaceKeeperError):
    """Raised for invalid disk space settings"""
    def __init__(self, message: str, key: str = None, details: dict = None):
        super().__init__(message, details)
        self.key = key
