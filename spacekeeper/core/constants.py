"""Constants shared by the disk space admission modules."""

# Group value meaning "no group"; also the wildcard for excluding_group
NO_GROUP = -1

# Minimum seconds between capacity probes for a transfer paused on a UI tick
DISK_SPACE_CHECK_THROTTLE_SECONDS = 5.0

# Delay between deletion completing and the re-probe of the waiting transfer
REPROBE_DELAY_MS = 500

DEFAULT_MAX_PROBE_WORKERS = 2

# Engine activity values (mirrors the engine's status names)
ACTIVITY_STOPPED = "stopped"
ACTIVITY_CHECK_WAIT = "check_wait"
ACTIVITY_CHECK = "check"
ACTIVITY_DOWNLOAD_WAIT = "download_wait"
ACTIVITY_DOWNLOAD = "download"
ACTIVITY_SEED_WAIT = "seed_wait"
ACTIVITY_SEED = "seed"

# Activities whose remaining bytes count as reserved space on the volume
RESERVING_ACTIVITIES = (ACTIVITY_DOWNLOAD, ACTIVITY_SEED)

LOG_CATEGORY = "disk"
