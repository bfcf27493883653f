"""
Win Room Kernel

Reconciliation and installment core for the Win Room sales backend:
- Checkpointed incremental sync of upstream subscriptions
- Fingerprint-based duplicate detection
- Currency-normalized revenue, cost and margin metrics
- At-most-once achievement creation keyed by dedupe strings
- Installment plan and payment state machine with rollup
"""

__version__ = "0.1.0"
