"""Origin trust synchronizer package."""

from .plan import TransitionPlan, compute_transition_plan
from .scheduler import SyncScheduler
from .synchronizer import OriginTrustSynchronizer

__all__ = [
    "OriginTrustSynchronizer",
    "SyncScheduler",
    "TransitionPlan",
    "compute_transition_plan",
]
