from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path

SCAN_TIMEOUT_SECONDS = 6.0
CONNECT_TIMEOUT_SECONDS = 12.0
SAMPLE_SECONDS = 5.0
TICK_SECONDS = 0.25
DEFAULT_PACE_SEC_PER_KM = 300

DB_FILENAME = "cadence_coach.db"

ENV_DATA_DIR = "CADENCE_COACH_DATA_DIR"
ENV_PACE = "CADENCE_COACH_PACE_SEC_PER_KM"
ENV_SAMPLE_SECONDS = "CADENCE_COACH_SAMPLE_SECONDS"


def default_data_dir() -> Path:
    if os.name == "nt":
        base = Path(os.getenv("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
        return base / "CadenceCoach"
    return Path.home() / ".local" / "share" / "cadence_coach"


@dataclass(frozen=True)
class CoachSettings:
    data_dir: Path
    pace_sec_per_km: int = DEFAULT_PACE_SEC_PER_KM
    sample_seconds: float = SAMPLE_SECONDS
    scan_timeout_s: float = SCAN_TIMEOUT_SECONDS

    @property
    def db_path(self) -> Path:
        return self.data_dir / DB_FILENAME

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> CoachSettings:
        env = os.environ if environ is None else environ
        raw_dir = env.get(ENV_DATA_DIR)
        data_dir = Path(raw_dir).expanduser() if raw_dir else default_data_dir()
        settings = cls(data_dir=data_dir)

        raw_pace = env.get(ENV_PACE)
        if raw_pace:
            pace = int(float(raw_pace))
            if pace <= 0:
                raise ValueError(f"{ENV_PACE} must be > 0.")
            settings = replace(settings, pace_sec_per_km=pace)

        raw_sample = env.get(ENV_SAMPLE_SECONDS)
        if raw_sample:
            sample_s = float(raw_sample)
            if sample_s <= 0:
                raise ValueError(f"{ENV_SAMPLE_SECONDS} must be > 0.")
            settings = replace(settings, sample_seconds=sample_s)
        return settings

    def ensure_dir(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
