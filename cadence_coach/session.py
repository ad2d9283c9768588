from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime

from cadence_coach.advisory import AdvisoryResult, recompute
from cadence_coach.decoders import MetricKind, Payload, decode
from cadence_coach.fusion import MetricFusion, MetricSnapshot
from cadence_coach.store import EffSample, SampleRecorder

logger = logging.getLogger(__name__)

AdvisoryListener = Callable[[MetricSnapshot, AdvisoryResult], None]


class CoachSession:
    """Owns the snapshot and serializes decode -> fuse -> recompute.

    Notifications may arrive from the BLE loop thread while the caller reads
    or captures from another, so every update and every read of the
    snapshot/advisory pair goes through one lock.
    """

    def __init__(
        self,
        recorder: SampleRecorder | None = None,
        snapshot: MetricSnapshot | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self.fusion = MetricFusion(snapshot)
        self.recorder = recorder
        self._advisory = recompute(self.fusion.snapshot)
        self._listeners: list[AdvisoryListener] = []
        self.updates = 0

    def on_advisory(self, listener: AdvisoryListener) -> None:
        self._listeners.append(listener)

    def handle_payload(self, kind: MetricKind, data: Payload) -> AdvisoryResult:
        return self.apply(kind, decode(kind, data))

    def apply(self, kind: MetricKind, value: int) -> AdvisoryResult:
        with self._lock:
            snapshot = self.fusion.apply_update(kind, value)
            self._advisory = recompute(snapshot)
            self.updates += 1
            frozen = snapshot.copy()
            advisory = self._advisory
        for listener in self._listeners:
            listener(frozen, advisory)
        return advisory

    def set_pace(self, pace_sec_per_km: int) -> AdvisoryResult:
        with self._lock:
            snapshot = self.fusion.set_pace(pace_sec_per_km)
            self._advisory = recompute(snapshot)
            return self._advisory

    def state(self) -> tuple[MetricSnapshot, AdvisoryResult]:
        with self._lock:
            return self.fusion.snapshot.copy(), self._advisory

    def capture(self, now: datetime | None = None) -> EffSample:
        if self.recorder is None:
            raise RuntimeError("Session has no sample recorder.")
        snapshot, advisory = self.state()
        return self.recorder.capture(advisory, snapshot, now)
