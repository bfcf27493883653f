"""
winroom_batch.jobs -- Sub-job protocol, registry, runner and the job set.
"""

from winroom_batch.jobs.base import JobRegistry, JobRunner, SubJob
from winroom_batch.jobs.installment_jobs import OverdueSweepJob
from winroom_batch.jobs.maintenance_jobs import CacheCleanupJob
from winroom_batch.jobs.sales_jobs import GoalProgressJob, LeadSyncJob, RevenueMilestonesJob

__all__ = [
    "CacheCleanupJob",
    "GoalProgressJob",
    "JobRegistry",
    "JobRunner",
    "LeadSyncJob",
    "OverdueSweepJob",
    "RevenueMilestonesJob",
    "SubJob",
]
