"""SpaceKeeper: disk-space-aware admission and eviction for torrent transfers."""

__version__ = "0.3.0"
