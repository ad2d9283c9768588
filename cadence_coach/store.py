from __future__ import annotations

import logging
import sqlite3
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from cadence_coach.advisory import AdvisoryResult
from cadence_coach.errors import PersistenceError
from cadence_coach.fusion import MetricSnapshot

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS eff_samples (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    time TEXT NOT NULL,
    efficiency REAL NOT NULL,
    rhythm INTEGER NOT NULL,
    prompt TEXT NOT NULL DEFAULT ''
);
CREATE TABLE IF NOT EXISTS telemetry (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    time TEXT NOT NULL,
    cadence INTEGER NOT NULL,
    power INTEGER NOT NULL,
    heart_rate INTEGER NOT NULL
);
"""


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        return raw
    return datetime.fromisoformat(str(raw))


@dataclass(frozen=True)
class EffSample:
    time: datetime
    efficiency: float
    rhythm: int
    prompt: str = ""

    def to_fields(self) -> tuple[str, float, int, str]:
        return (self.time.isoformat(), float(self.efficiency), int(self.rhythm), self.prompt)

    @classmethod
    def from_fields(cls, fields: Sequence[Any]) -> EffSample:
        """Build a sample from positional (time, efficiency, rhythm[, prompt]).

        Records written before the prompt field existed carry three fields; the
        missing prompt reads as an empty string.
        """
        if len(fields) < 3:
            raise ValueError(f"Sample record needs at least 3 fields, got {len(fields)}.")
        prompt = fields[3] if len(fields) > 3 and fields[3] is not None else ""
        return cls(
            time=_parse_time(fields[0]),
            efficiency=float(fields[1]),
            rhythm=int(fields[2]),
            prompt=str(prompt),
        )


@dataclass(frozen=True)
class TelemetryRow:
    time: datetime
    cadence: int
    power: int
    heart_rate: int

    @classmethod
    def from_snapshot(cls, snapshot: MetricSnapshot, now: datetime) -> TelemetryRow:
        return cls(
            time=now,
            cadence=int(snapshot.cadence_spm),
            power=int(snapshot.power_watts),
            heart_rate=int(snapshot.heart_rate_bpm),
        )


class SampleStore:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(db_path)
            self.conn.row_factory = sqlite3.Row
            self._init_schema()
        except (sqlite3.Error, OSError) as exc:
            raise PersistenceError(f"Cannot open sample store {db_path}: {exc}") from exc

    def _init_schema(self) -> None:
        self.conn.executescript(SCHEMA_SQL)
        self._migrate()
        self.conn.commit()

    def _migrate(self) -> None:
        """Bring stores written by older releases up to the current columns."""
        cols = {row["name"] for row in self.conn.execute("PRAGMA table_info(eff_samples)")}
        if "cadence" in cols and "rhythm" not in cols:
            logger.info("Migrating eff_samples: cadence -> rhythm")
            self.conn.execute("ALTER TABLE eff_samples RENAME COLUMN cadence TO rhythm")
        if "prompt" not in cols:
            logger.info("Migrating eff_samples: adding prompt column")
            self.conn.execute("ALTER TABLE eff_samples ADD COLUMN prompt TEXT NOT NULL DEFAULT ''")

    def append(self, sample: EffSample, telemetry: TelemetryRow | None = None) -> None:
        try:
            with self.conn:
                self.conn.execute(
                    "INSERT INTO eff_samples (time, efficiency, rhythm, prompt) VALUES (?, ?, ?, ?)",
                    sample.to_fields(),
                )
                if telemetry is not None:
                    self.conn.execute(
                        "INSERT INTO telemetry (time, cadence, power, heart_rate) VALUES (?, ?, ?, ?)",
                        (
                            telemetry.time.isoformat(),
                            telemetry.cadence,
                            telemetry.power,
                            telemetry.heart_rate,
                        ),
                    )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to append sample: {exc}") from exc

    def list_samples(self, limit: int | None = None) -> list[EffSample]:
        query = "SELECT time, efficiency, rhythm, prompt FROM eff_samples ORDER BY rowid"
        params: tuple[Any, ...] = ()
        if limit is not None:
            # newest N, still returned oldest first
            query = (
                "SELECT time, efficiency, rhythm, prompt FROM ("
                "SELECT rowid AS rid, time, efficiency, rhythm, prompt FROM eff_samples "
                "ORDER BY rowid DESC LIMIT ?) ORDER BY rid"
            )
            params = (int(limit),)
        try:
            rows = self.conn.execute(query, params).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to read samples: {exc}") from exc
        return [
            EffSample.from_fields((row["time"], row["efficiency"], row["rhythm"], row["prompt"]))
            for row in rows
        ]

    def list_telemetry(self) -> list[TelemetryRow]:
        try:
            rows = self.conn.execute(
                "SELECT time, cadence, power, heart_rate FROM telemetry ORDER BY rowid"
            ).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to read telemetry: {exc}") from exc
        return [
            TelemetryRow(
                time=_parse_time(row["time"]),
                cadence=int(row["cadence"]),
                power=int(row["power"]),
                heart_rate=int(row["heart_rate"]),
            )
            for row in rows
        ]

    def close(self) -> None:
        self.conn.close()


class SampleRecorder:
    """Appends one efficiency sample per capture; the caller picks the trigger."""

    def __init__(self, store: SampleStore) -> None:
        self.store = store

    def capture(
        self,
        advisory: AdvisoryResult,
        snapshot: MetricSnapshot,
        now: datetime | None = None,
    ) -> EffSample:
        ts = now or now_utc()
        sample = EffSample(
            time=ts,
            efficiency=advisory.efficiency_value,
            rhythm=int(snapshot.cadence_spm),
            prompt=advisory.prompt_text,
        )
        self.store.append(sample, TelemetryRow.from_snapshot(snapshot, ts))
        return sample
