"""
Energy bookkeeping for a SimulationWorld.

Separates the two sources of energy change:
- integrator drift: numerical error accumulated between observation points
- merge loss: the intentional, instantaneous loss of each inelastic merge

so that `latest - first == integrator_drift + sum(merge deltas)` always holds.
"""
from collections import deque
from dataclasses import dataclass
from typing import Optional, Tuple

from .config import (
    ENERGY_HISTORY_LENGTH,
    ENERGY_TREND_MIN_SAMPLES,
    ENERGY_TREND_THRESHOLD,
    EPSILON,
    MERGE_EVENT_HISTORY,
)

STABLE = "stable"
INCREASING = "increasing"
DECREASING = "decreasing"


@dataclass(frozen=True)
class MergeEvent:
    step: int
    pre_merge_energy: float
    post_merge_energy: float
    delta: float


@dataclass(frozen=True)
class EnergyLedgerView:
    kinetic: float
    potential: float
    total: float
    history: Tuple[float, ...]
    trend: str
    integrator_drift: float
    merge_loss: float
    merge_events: Tuple[MergeEvent, ...]


def classify_trend(history, threshold: float = ENERGY_TREND_THRESHOLD) -> str:
    """Percent change from the oldest to the newest sample, +/- threshold."""
    if len(history) < 2:
        return STABLE
    initial = history[0]
    recent = history[-1]
    if abs(initial) < EPSILON:
        return STABLE
    change = (recent - initial) / abs(initial)
    if change < -threshold:
        return DECREASING
    if change > threshold:
        return INCREASING
    return STABLE


class EnergyLedger:
    def __init__(self, history_length: int = ENERGY_HISTORY_LENGTH, merge_history: int = MERGE_EVENT_HISTORY):
        self.history = deque(maxlen=history_length)
        self.merge_events = deque(maxlen=merge_history)
        self.kinetic = 0.0
        self.potential = 0.0
        self.total = 0.0
        self.trend = STABLE
        self.integrator_drift = 0.0
        self.merge_loss = 0.0
        self.first_total: Optional[float] = None
        self._reference: Optional[float] = None

    def reset(self) -> None:
        self.__init__(self.history.maxlen, self.merge_events.maxlen)

    def sample(self, kinetic: float, potential: float) -> None:
        """Record an observation of the system energy."""
        total = kinetic + potential
        if self._reference is not None:
            self.integrator_drift += total - self._reference
        if self.first_total is None:
            self.first_total = total
        self._reference = total

        self.kinetic = kinetic
        self.potential = potential
        self.total = total
        self.history.append(total)
        if len(self.history) > ENERGY_TREND_MIN_SAMPLES:
            self.trend = classify_trend(self.history)

    def rebase(self, before_total: float, kinetic: float, potential: float) -> None:
        """
        Take a baseline observation around an external change (a body added,
        a new configuration). Drift up to `before_total` is booked; the jump
        to the new total is not, and `first_total` shifts by it so the
        identity above keeps holding.
        """
        total = kinetic + potential
        if self._reference is None:
            self.first_total = total
        else:
            self.integrator_drift += before_total - self._reference
            self.first_total += total - before_total
        self._reference = total
        self.kinetic = kinetic
        self.potential = potential
        self.total = total

    def record_merge(self, step: int, pre_merge_energy: float, post_merge_energy: float) -> MergeEvent:
        """
        Record the energy jump caused by the merges of one step.

        Drift accumulated up to the merge is booked first; the post-merge
        energy becomes the new reference so the jump itself never counts as
        drift.
        """
        if self._reference is not None:
            self.integrator_drift += pre_merge_energy - self._reference
        if self.first_total is None:
            self.first_total = pre_merge_energy
        self._reference = post_merge_energy

        event = MergeEvent(step, pre_merge_energy, post_merge_energy, post_merge_energy - pre_merge_energy)
        self.merge_events.append(event)
        self.merge_loss += event.delta
        return event

    def view(self) -> EnergyLedgerView:
        return EnergyLedgerView(
            kinetic=self.kinetic,
            potential=self.potential,
            total=self.total,
            history=tuple(self.history),
            trend=self.trend,
            integrator_drift=self.integrator_drift,
            merge_loss=self.merge_loss,
            merge_events=tuple(self.merge_events),
        )
