"""
Fingerprint -- deterministic identity hash for duplicate detection.

Two upstream subscriptions for the same user and campaign, created within
the same UTC hour and carrying the same external payment ids, share a
fingerprint.  The poller treats a second ledger row with a fingerprint
already seen in the trailing window as a duplicate.
"""

from datetime import datetime, timedelta, timezone

from winroom_kernel.utils.hashing import hash_pipe_fields

DUPLICATE_WINDOW = timedelta(hours=24)


def hour_bucket(created_at: datetime) -> str:
    """``YYYY-MM-DDTHH`` of *created_at* in UTC (naive values are UTC)."""
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return created_at.astimezone(timezone.utc).strftime("%Y-%m-%dT%H")


def generate_fingerprint(
    user_id: int | None,
    campaign_id: int | None,
    created_at: datetime,
    stripe_sub_id: str | None = None,
    paypal_sub_id: str | None = None,
) -> str:
    """SHA-256 hex over user, campaign, creation hour and external ids."""
    return hash_pipe_fields([
        user_id,
        campaign_id,
        hour_bucket(created_at),
        stripe_sub_id or "",
        paypal_sub_id or "",
    ])
