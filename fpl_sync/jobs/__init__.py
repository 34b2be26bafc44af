"""Sync job scheduling: ids, worker pool, bounded fan-out and periodic triggers."""

from fpl_sync.jobs.fanout import ItemOutcome, ItemStatus, SyncTally, map_bounded
from fpl_sync.jobs.ids import COORDINATOR_TAG, SYNC_TAG, job_id, parse_job_id
from fpl_sync.jobs.scheduler import JobHandle, JobScheduler, JobSource, JobStatus, SyncJob
from fpl_sync.jobs.triggers import SyncTriggers

__all__ = [
    "ItemOutcome",
    "ItemStatus",
    "SyncTally",
    "map_bounded",
    "COORDINATOR_TAG",
    "SYNC_TAG",
    "job_id",
    "parse_job_id",
    "JobHandle",
    "JobScheduler",
    "JobSource",
    "JobStatus",
    "SyncJob",
    "SyncTriggers",
]
