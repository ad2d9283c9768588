from __future__ import annotations

import pytest

from cadence_coach.advisory import EfficiencyUnit, cadence_prompt, recompute
from cadence_coach.fusion import MetricSnapshot


def test_cycling_power_per_beat() -> None:
    result = recompute(MetricSnapshot(heart_rate_bpm=140, power_watts=200, cadence_spm=80))
    assert result.efficiency_value == pytest.approx(200 / 140)
    assert round(result.efficiency_value, 2) == 1.43
    assert result.efficiency_unit == EfficiencyUnit.POWER_PER_BEAT
    assert result.cadence_target_spm == 90
    assert result.cadence_diff == 10
    assert result.prompt_text == "Increase cadence (+10) → target 90"


def test_running_pace_per_beat_inside_band() -> None:
    result = recompute(
        MetricSnapshot(heart_rate_bpm=150, power_watts=0, cadence_spm=178, pace_sec_per_km=300)
    )
    assert result.efficiency_value == pytest.approx(5.0 / 150)
    assert result.efficiency_unit == EfficiencyUnit.DISTANCE_PER_BEAT
    assert result.cadence_target_spm == 176
    assert result.cadence_diff == -2
    assert result.prompt_text == "Cadence optimal (176)"


def test_zero_heart_rate_gives_zero_efficiency() -> None:
    result = recompute(MetricSnapshot(heart_rate_bpm=0, power_watts=250, cadence_spm=90))
    assert result.efficiency_value == 0.0
    assert result.efficiency_unit == EfficiencyUnit.DISTANCE_PER_BEAT
    assert result.cadence_target_spm == 90


def test_decrease_prompt_shows_absolute_value() -> None:
    result = recompute(MetricSnapshot(heart_rate_bpm=150, cadence_spm=186))
    assert result.cadence_diff == -10
    assert result.prompt_text == "Decrease cadence (-10) → target 176"


@pytest.mark.parametrize(
    "diff,expected",
    [
        (5, "Increase cadence (+5) → target 90"),
        (4, "Cadence optimal (90)"),
        (0, "Cadence optimal (90)"),
        (-4, "Cadence optimal (90)"),
        (-5, "Decrease cadence (-5) → target 90"),
    ],
)
def test_hysteresis_band_edges(diff: int, expected: str) -> None:
    assert cadence_prompt(diff, 90) == expected


def test_recompute_is_idempotent() -> None:
    snap = MetricSnapshot(heart_rate_bpm=133, power_watts=0, cadence_spm=168, pace_sec_per_km=287)
    assert recompute(snap) == recompute(snap)
