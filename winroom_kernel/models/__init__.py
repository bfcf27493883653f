"""ORM models.  Importing this package registers every table on ``Base.metadata``."""

from winroom_kernel.models.achievement import Achievement
from winroom_kernel.models.checkpoint import CacheEntry
from winroom_kernel.models.event import DomainEvent
from winroom_kernel.models.installment import (
    InstallmentAction,
    InstallmentPayment,
    InstallmentPlan,
)
from winroom_kernel.models.ledger import Exclusion, LedgerEntry, SubscriptionMetrics
from winroom_kernel.models.sales import (
    Attribution,
    Claim,
    ClaimAdjustment,
    LeadAssignmentDaily,
    PersonalGoal,
    ProgressCache,
    SalesGoal,
    Seller,
    Setting,
)
from winroom_kernel.models.upstream import (
    Campaign,
    LeadDefinition,
    PaymentConversation,
    PaymentInfo,
    Subscription,
    UpstreamUser,
)

__all__ = [
    "Achievement",
    "Attribution",
    "CacheEntry",
    "Campaign",
    "Claim",
    "ClaimAdjustment",
    "DomainEvent",
    "Exclusion",
    "InstallmentAction",
    "InstallmentPayment",
    "InstallmentPlan",
    "LeadAssignmentDaily",
    "LeadDefinition",
    "LedgerEntry",
    "PaymentConversation",
    "PaymentInfo",
    "PersonalGoal",
    "ProgressCache",
    "SalesGoal",
    "Seller",
    "Setting",
    "Subscription",
    "SubscriptionMetrics",
    "UpstreamUser",
]
