"""
winroom_batch -- The reconciliation poller and its scheduled sub-jobs.

Runs one cooperative poll loop: each tick syncs new and changed upstream
subscriptions into the ledger, then gives every sub-job (overdue sweep,
lead sync, goal progress, revenue milestones, cache cleanup) a chance to
run on its own cadence.

Architecture:
    winroom_batch/ is a top-level package.  Nothing in winroom_kernel
    imports from it.  Configuration arrives through winroom_config.
"""
