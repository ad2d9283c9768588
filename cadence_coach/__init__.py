from __future__ import annotations

from cadence_coach.advisory import AdvisoryResult, EfficiencyUnit, recompute
from cadence_coach.decoders import MetricKind, decode
from cadence_coach.devices import PROTOCOLS, DeviceProtocolDescriptor, classify
from cadence_coach.errors import CoachError, PersistenceError, TransportError
from cadence_coach.fusion import MetricFusion, MetricSnapshot
from cadence_coach.session import CoachSession
from cadence_coach.store import EffSample, SampleRecorder, SampleStore, TelemetryRow

__all__ = [
    "AdvisoryResult",
    "CoachError",
    "CoachSession",
    "DeviceProtocolDescriptor",
    "EffSample",
    "EfficiencyUnit",
    "MetricFusion",
    "MetricKind",
    "MetricSnapshot",
    "PROTOCOLS",
    "PersistenceError",
    "SampleRecorder",
    "SampleStore",
    "TelemetryRow",
    "TransportError",
    "classify",
    "decode",
    "recompute",
]
