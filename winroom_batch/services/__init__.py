"""
winroom_batch.services -- The poller and its worker threads.
"""

from winroom_batch.services.poller import ReconciliationPoller
from winroom_batch.services.worker import PollerWorker

__all__ = ["PollerWorker", "ReconciliationPoller"]
