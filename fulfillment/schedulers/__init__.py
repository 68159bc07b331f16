"""Background loops: offer retry and stale-order auto-cancel."""
from fulfillment.schedulers.auto_cancel import AutoCancelScheduler
from fulfillment.schedulers.base import PeriodicTask
from fulfillment.schedulers.retry import RetryScheduler

__all__ = ["PeriodicTask", "RetryScheduler", "AutoCancelScheduler"]
