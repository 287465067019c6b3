"""
Outcome values returned by reconcile phases.

Every phase answers one question: may the pass go on, and if it stops,
should the scheduler call back after the fixed delay or wait for the next
watch event.
"""
from enum import Enum


class PhaseOutcome(str, Enum):
    """Tri-state result of one reconcile phase."""
    CONTINUE = "continue"
    REQUEUE = "requeue"   # stop this pass, retry after the fixed delay
    STOP = "stop"         # stop this pass, rely on future watch events

    @property
    def stops(self) -> bool:
        return self is not PhaseOutcome.CONTINUE

    @property
    def requeue(self) -> bool:
        return self is PhaseOutcome.REQUEUE
