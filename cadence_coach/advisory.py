"""Efficiency ratio and cadence prompt derived from the live snapshot.

Modality is inferred from the power signal: a nonzero power reading means
cycling (target 90 rpm, power per beat), otherwise running (target 176 spm,
pace in min/km per beat). Inside the hysteresis band around the target the
prompt stays on "optimal" so near-target cadence does not flicker.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from cadence_coach.fusion import MetricSnapshot

CYCLING_CADENCE_TARGET = 90
RUNNING_CADENCE_TARGET = 176
HYSTERESIS_BAND = 5


class EfficiencyUnit(str, Enum):
    DISTANCE_PER_BEAT = "distance_per_beat"
    POWER_PER_BEAT = "power_per_beat"


@dataclass(frozen=True)
class AdvisoryResult:
    efficiency_value: float
    efficiency_unit: EfficiencyUnit
    cadence_target_spm: int
    cadence_diff: int
    prompt_text: str


def cadence_prompt(diff: int, target: int, band: int = HYSTERESIS_BAND) -> str:
    if abs(diff) < band:
        return f"Cadence optimal ({target})"
    if diff > 0:
        return f"Increase cadence (+{diff}) → target {target}"
    return f"Decrease cadence (-{abs(diff)}) → target {target}"


def recompute(snapshot: MetricSnapshot) -> AdvisoryResult:
    hr = snapshot.heart_rate_bpm
    power = snapshot.power_watts
    pace_min_per_km = snapshot.pace_sec_per_km / 60.0

    if hr > 0 and power > 0:
        efficiency = power / hr
        unit = EfficiencyUnit.POWER_PER_BEAT
    elif hr > 0:
        efficiency = pace_min_per_km / hr
        unit = EfficiencyUnit.DISTANCE_PER_BEAT
    else:
        efficiency = 0.0
        unit = EfficiencyUnit.DISTANCE_PER_BEAT

    target = CYCLING_CADENCE_TARGET if power > 0 else RUNNING_CADENCE_TARGET
    diff = target - snapshot.cadence_spm
    return AdvisoryResult(
        efficiency_value=float(efficiency),
        efficiency_unit=unit,
        cadence_target_spm=target,
        cadence_diff=diff,
        prompt_text=cadence_prompt(diff, target),
    )
