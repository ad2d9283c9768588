from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path

import pytest

from cadence_coach.advisory import recompute
from cadence_coach.errors import PersistenceError
from cadence_coach.fusion import MetricSnapshot
from cadence_coach.store import EffSample, SampleRecorder, SampleStore


def test_capture_round_trip(tmp_path: Path) -> None:
    store = SampleStore(tmp_path / "coach.db")
    recorder = SampleRecorder(store)
    snap = MetricSnapshot(heart_rate_bpm=140, power_watts=200, cadence_spm=80)
    now = datetime(2025, 3, 1, 7, 30, 15, 123456, tzinfo=timezone.utc)

    sample = recorder.capture(recompute(snap), snap, now)
    store.close()

    reopened = SampleStore(tmp_path / "coach.db")
    [loaded] = reopened.list_samples()
    assert loaded == sample
    assert loaded.time == now
    assert loaded.efficiency == 200 / 140
    assert loaded.rhythm == 80
    assert loaded.prompt == "Increase cadence (+10) → target 90"

    [row] = reopened.list_telemetry()
    assert (row.time, row.cadence, row.power, row.heart_rate) == (now, 80, 200, 140)
    reopened.close()


def test_repeated_captures_are_appended(tmp_path: Path) -> None:
    store = SampleStore(tmp_path / "coach.db")
    recorder = SampleRecorder(store)
    snap = MetricSnapshot(heart_rate_bpm=150, cadence_spm=176)
    advisory = recompute(snap)
    now = datetime(2025, 3, 1, tzinfo=timezone.utc)
    recorder.capture(advisory, snap, now)
    recorder.capture(advisory, snap, now)
    samples = store.list_samples()
    assert len(samples) == 2
    assert samples[0] == samples[1]
    store.close()


def test_list_samples_limit_keeps_newest_in_order(tmp_path: Path) -> None:
    store = SampleStore(tmp_path / "coach.db")
    for minute in range(5):
        store.append(EffSample(datetime(2025, 1, 1, 8, minute, tzinfo=timezone.utc), 0.5, 170 + minute, "x"))
    rhythms = [s.rhythm for s in store.list_samples(limit=2)]
    assert rhythms == [173, 174]
    store.close()


def test_legacy_three_field_store_is_migrated(tmp_path: Path) -> None:
    db = tmp_path / "legacy.db"
    conn = sqlite3.connect(db)
    conn.execute(
        "CREATE TABLE eff_samples (id INTEGER PRIMARY KEY AUTOINCREMENT, "
        "time TEXT NOT NULL, efficiency REAL NOT NULL, cadence INTEGER NOT NULL)"
    )
    conn.execute(
        "INSERT INTO eff_samples (time, efficiency, cadence) VALUES (?, ?, ?)",
        ("2024-06-01T06:00:00+00:00", 0.0333, 178),
    )
    conn.commit()
    conn.close()

    store = SampleStore(db)
    [old] = store.list_samples()
    assert old.rhythm == 178
    assert old.prompt == ""
    assert old.time == datetime(2024, 6, 1, 6, 0, tzinfo=timezone.utc)

    store.append(EffSample(datetime(2024, 6, 1, 6, 1, tzinfo=timezone.utc), 0.04, 176, "Cadence optimal (176)"))
    assert [s.prompt for s in store.list_samples()] == ["", "Cadence optimal (176)"]
    store.close()


def test_from_fields_defaults_missing_prompt() -> None:
    sample = EffSample.from_fields(["2024-06-01T06:00:00+00:00", "0.5", "170"])
    assert sample.prompt == ""
    assert sample.rhythm == 170
    with pytest.raises(ValueError):
        EffSample.from_fields(["2024-06-01T06:00:00+00:00", "0.5"])


def test_append_failure_is_surfaced(tmp_path: Path) -> None:
    store = SampleStore(tmp_path / "coach.db")
    recorder = SampleRecorder(store)
    store.close()
    snap = MetricSnapshot()
    with pytest.raises(PersistenceError):
        recorder.capture(recompute(snap), snap)


def test_unopenable_store_raises(tmp_path: Path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    with pytest.raises(PersistenceError):
        SampleStore(blocker / "coach.db")
