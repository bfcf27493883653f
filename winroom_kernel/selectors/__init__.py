"""Selectors for the Win Room kernel (read side)."""

from winroom_kernel.selectors.claim_selector import ClaimSelector, day_window
from winroom_kernel.selectors.installment_selector import (
    InstallmentDashboard,
    InstallmentSelector,
    PaymentDTO,
    PlanCategory,
    PlanDTO,
    PlanFilters,
)

__all__ = [
    "ClaimSelector",
    "InstallmentDashboard",
    "InstallmentSelector",
    "PaymentDTO",
    "PlanCategory",
    "PlanDTO",
    "PlanFilters",
    "day_window",
]
