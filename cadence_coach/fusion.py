from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from cadence_coach.config import DEFAULT_PACE_SEC_PER_KM
from cadence_coach.decoders import MetricKind

logger = logging.getLogger(__name__)

FIELD_FOR_KIND: dict[MetricKind, str] = {
    MetricKind.HEART_RATE: "heart_rate_bpm",
    MetricKind.CADENCE: "cadence_spm",
    MetricKind.POWER: "power_watts",
}


@dataclass
class MetricSnapshot:
    heart_rate_bpm: int = 0
    cadence_spm: int = 0
    power_watts: int = 0
    pace_sec_per_km: int = DEFAULT_PACE_SEC_PER_KM

    def copy(self) -> MetricSnapshot:
        return replace(self)


class MetricFusion:
    """Single point of mutation for the session snapshot.

    Each update touches one field; whichever sensor reported last wins that
    field.
    """

    def __init__(self, snapshot: MetricSnapshot | None = None) -> None:
        self.snapshot = snapshot if snapshot is not None else MetricSnapshot()

    def apply_update(self, kind: MetricKind | str, value: int) -> MetricSnapshot:
        try:
            attr = FIELD_FOR_KIND[MetricKind(kind)]
        except (KeyError, ValueError):
            logger.debug("Dropping update for unknown metric %r", kind)
            return self.snapshot
        setattr(self.snapshot, attr, int(value))
        return self.snapshot

    def set_pace(self, pace_sec_per_km: int) -> MetricSnapshot:
        pace = int(pace_sec_per_km)
        if pace <= 0:
            raise ValueError(f"Pace must be > 0 s/km, got {pace_sec_per_km}.")
        self.snapshot.pace_sec_per_km = pace
        return self.snapshot
