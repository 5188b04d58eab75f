"""Abandoned-checkout detection.

Evaluated whenever a checkout update arrives. A checkout that is still
open ``threshold_minutes`` after creation is flagged abandoned exactly
once; the persisted flag keeps later updates from firing again.
"""

from datetime import datetime, timedelta

from db.models.checkout import Checkout


class AbandonedCheckoutDetector:
    def __init__(self, threshold_minutes: int = 60):
        self.threshold = timedelta(minutes=threshold_minutes)

    def is_abandoned(self, checkout: Checkout, now: datetime) -> bool:
        if checkout.completed_at is not None:
            return False
        created = checkout.upstream_created_at or checkout.created_at
        return created is not None and now - created >= self.threshold

    def evaluate(self, checkout: Checkout, now: datetime) -> bool:
        """Update the checkout's flags. True only on the transition to abandoned."""
        if checkout.completed_at is not None:
            # A completed checkout is never abandoned, even if it was flagged earlier.
            checkout.abandoned = False
            return False
        if checkout.abandoned or not self.is_abandoned(checkout, now):
            return False
        checkout.abandoned = True
        checkout.abandoned_at = now
        return True
