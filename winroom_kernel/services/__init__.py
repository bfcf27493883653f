"""Services for the Win Room kernel (write side)."""

from winroom_kernel.services.achievement_service import AchievementResult, AchievementService
from winroom_kernel.services.checkpoint_store import CheckpointStore
from winroom_kernel.services.event_log import EventLog
from winroom_kernel.services.fx_rate_service import FxRateCache, FxRateService
from winroom_kernel.services.goal_progress_service import GoalProgress, GoalProgressService
from winroom_kernel.services.installment_service import InstallmentService
from winroom_kernel.services.lead_assignment_service import LeadAssignmentService, LeadSyncResult
from winroom_kernel.services.ledger_service import (
    AdmissionOutcome,
    AdmissionResult,
    LedgerService,
    LedgerStatus,
)
from winroom_kernel.services.metrics_service import MetricsService
from winroom_kernel.services.revenue_milestone_service import (
    MilestoneEvaluation,
    RevenueMilestoneService,
)

__all__ = [
    "AchievementResult",
    "AchievementService",
    "AdmissionOutcome",
    "AdmissionResult",
    "CheckpointStore",
    "EventLog",
    "FxRateCache",
    "FxRateService",
    "GoalProgress",
    "GoalProgressService",
    "InstallmentService",
    "LeadAssignmentService",
    "LeadSyncResult",
    "LedgerService",
    "LedgerStatus",
    "MetricsService",
    "MilestoneEvaluation",
    "RevenueMilestoneService",
]
