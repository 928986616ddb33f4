"""Progress events and the channel observers subscribe to.

The coordinator owns one ``ProgressChannel``. Drivers never see it directly: they
receive a ``PhaseProgress`` handle and report their own 0-100 completion, which
``SyncProgress`` folds into a weighted stage percentage before publishing.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
    """A progress update for one stage ("metadata" or "data")."""

    phase_id: str
    percent: float


ProgressObserver = Callable[[ProgressEvent], None]


class ProgressChannel:
    """Observable stream of ProgressEvent."""

    def __init__(self):
        self._observers: list[ProgressObserver] = []
        self._lock = threading.Lock()

    def subscribe(self, observer: ProgressObserver) -> Callable[[], None]:
        """Register an observer.

        Args:
            observer: Called with every ProgressEvent

        Returns:
            Function that unsubscribes the observer
        """
        with self._lock:
            self._observers.append(observer)

        def unsubscribe():
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    def emit(self, phase_id: str, percent: float):
        """Publish an event, clamping percent into 0..100."""
        event = ProgressEvent(phase_id=phase_id, percent=max(0.0, min(100.0, float(percent))))
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            try:
                observer(event)
            except Exception as e:
                logger.warning(f"Progress observer failed: {e}")


class PhaseProgress:
    """Handle through which one phase reports its own completion."""

    def __init__(self, owner: "SyncProgress", phase_id: str):
        self._owner = owner
        self.phase_id = phase_id

    def update(self, percent: float):
        """Report phase completion (0..100)."""
        self._owner._update(self.phase_id, percent)

    def complete(self):
        self.update(100.0)


class SyncProgress:
    """Maps per-phase completion onto weighted stage percentages.

    Args:
        channel: Channel to publish on
        stages: stage id -> {phase id -> weight}; each stage's weights sum to 100
    """

    def __init__(self, channel: ProgressChannel, stages: dict[str, dict[str, float]]):
        for stage_id, weights in stages.items():
            total = sum(weights.values())
            if abs(total - 100.0) > 1e-6:
                raise ValueError(f"Phase weights for stage '{stage_id}' sum to {total}, not 100")
        self.channel = channel
        self.stages = stages
        self._stage_of = {
            phase_id: stage_id for stage_id, weights in stages.items() for phase_id in weights
        }
        self._completion: dict[str, float] = {phase_id: 0.0 for phase_id in self._stage_of}

    def phase(self, phase_id: str) -> PhaseProgress:
        if phase_id not in self._stage_of:
            raise KeyError(f"Unknown phase: {phase_id}")
        return PhaseProgress(self, phase_id)

    def stage_percent(self, stage_id: str) -> float:
        weights = self.stages[stage_id]
        return sum(weights[p] * self._completion[p] / 100.0 for p in weights)

    def _update(self, phase_id: str, percent: float):
        percent = max(0.0, min(100.0, percent))
        # Never move backwards within a phase
        if percent < self._completion[phase_id]:
            return
        self._completion[phase_id] = percent
        stage_id = self._stage_of[phase_id]
        self.channel.emit(stage_id, self.stage_percent(stage_id))
