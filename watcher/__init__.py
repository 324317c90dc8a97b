# ============================================================================
# WATCHER MODULE
# ============================================================================
# STATUS: Infrastructure - Nomad watch source
# PURPOSE: Export the Nomad client and the five watch streams
# CREATED: 13 OCT 2026
# ============================================================================

from watcher.client import NomadClient
from watcher.streams import (
    AllocationWatcher,
    ChangeTracker,
    build_sources,
    watch_evaluations,
    watch_jobs,
    watch_nodes,
)

__all__ = [
    "NomadClient",
    "AllocationWatcher",
    "ChangeTracker",
    "build_sources",
    "watch_evaluations",
    "watch_jobs",
    "watch_nodes",
]
