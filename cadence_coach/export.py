from __future__ import annotations

import csv
import logging
from collections.abc import Iterable
from pathlib import Path

from cadence_coach.errors import PersistenceError
from cadence_coach.store import EffSample, TelemetryRow

try:
    from fit_tool.fit_file_builder import FitFileBuilder
    from fit_tool.profile.messages.activity_message import ActivityMessage
    from fit_tool.profile.messages.event_message import EventMessage
    from fit_tool.profile.messages.file_id_message import FileIdMessage
    from fit_tool.profile.messages.record_message import RecordMessage
    from fit_tool.profile.messages.session_message import SessionMessage
    from fit_tool.profile.profile_type import Event, EventType, FileType, Manufacturer, Sport

    FIT_EXPORT_AVAILABLE = True
except ImportError:
    FIT_EXPORT_AVAILABLE = False

logger = logging.getLogger(__name__)

TELEMETRY_HEADER = ["Timestamp", "Cadence", "Power", "HR"]
SAMPLE_HEADER = ["time", "efficiency", "rhythm", "prompt"]


def export_telemetry_csv(rows: Iterable[TelemetryRow], path: Path) -> int:
    count = 0
    try:
        with open(path, "w", newline="", encoding="utf-8") as fp:
            writer = csv.writer(fp)
            writer.writerow(TELEMETRY_HEADER)
            for row in rows:
                writer.writerow([row.time.isoformat(), row.cadence, row.power, row.heart_rate])
                count += 1
    except OSError as exc:
        raise PersistenceError(f"Failed to write {path}: {exc}") from exc
    logger.info("Exported %d telemetry rows to %s", count, path)
    return count


def export_samples_csv(samples: Iterable[EffSample], path: Path) -> int:
    count = 0
    try:
        with open(path, "w", newline="", encoding="utf-8") as fp:
            writer = csv.writer(fp)
            writer.writerow(SAMPLE_HEADER)
            for sample in samples:
                writer.writerow(sample.to_fields())
                count += 1
    except OSError as exc:
        raise PersistenceError(f"Failed to write {path}: {exc}") from exc
    logger.info("Exported %d samples to %s", count, path)
    return count


def read_samples_csv(path: Path) -> list[EffSample]:
    """Read a samples CSV; files from before the prompt column have 3 columns."""
    out: list[EffSample] = []
    try:
        with open(path, newline="", encoding="utf-8") as fp:
            for index, record in enumerate(csv.reader(fp)):
                if not record:
                    continue
                if index == 0 and record[0].strip().lower() == "time":
                    continue
                out.append(EffSample.from_fields(record))
    except OSError as exc:
        raise PersistenceError(f"Failed to read {path}: {exc}") from exc
    except ValueError as exc:
        raise PersistenceError(f"Malformed sample in {path}: {exc}") from exc
    return out


def fit_cadence(cadence: int, cycling: bool) -> int:
    # FIT stores running cadence as strides per minute
    return cadence if cycling else cadence // 2


def export_fit(rows: list[TelemetryRow], path: Path) -> None:
    if not FIT_EXPORT_AVAILABLE:
        raise RuntimeError("FIT export dependency is unavailable in this build.")
    if not rows:
        raise ValueError("No telemetry recorded to export.")

    start_ts_ms = int(rows[0].time.timestamp() * 1000)
    end_ts_ms = int(rows[-1].time.timestamp() * 1000)
    elapsed_s = max(end_ts_ms - start_ts_ms, 0) / 1000.0
    cycling = any(row.power > 0 for row in rows)

    builder = FitFileBuilder(auto_define=True)

    file_id = FileIdMessage()
    file_id.type = FileType.ACTIVITY
    file_id.manufacturer = Manufacturer.DEVELOPMENT
    file_id.product = 1
    file_id.serial_number = 1
    file_id.time_created = start_ts_ms
    builder.add(file_id)

    start_event = EventMessage()
    start_event.event = Event.TIMER
    start_event.event_type = EventType.START
    start_event.timestamp = start_ts_ms
    builder.add(start_event)

    for row in rows:
        record = RecordMessage()
        record.timestamp = int(row.time.timestamp() * 1000)
        record.cadence = fit_cadence(row.cadence, cycling)
        if row.heart_rate > 0:
            record.heart_rate = row.heart_rate
        if cycling:
            record.power = row.power
        builder.add(record)

    stop_event = EventMessage()
    stop_event.event = Event.TIMER
    stop_event.event_type = EventType.STOP
    stop_event.timestamp = end_ts_ms
    builder.add(stop_event)

    hr_values = [row.heart_rate for row in rows if row.heart_rate > 0]
    session = SessionMessage()
    session.timestamp = end_ts_ms
    session.start_time = start_ts_ms
    session.total_elapsed_time = elapsed_s
    session.total_timer_time = elapsed_s
    session.sport = Sport.CYCLING if cycling else Sport.RUNNING
    if hr_values:
        session.avg_heart_rate = int(round(sum(hr_values) / len(hr_values)))
        session.max_heart_rate = max(hr_values)
    if cycling:
        powers = [row.power for row in rows]
        session.avg_power = int(round(sum(powers) / len(powers)))
        session.max_power = max(powers)
    builder.add(session)

    activity = ActivityMessage()
    activity.timestamp = end_ts_ms
    activity.total_timer_time = elapsed_s
    activity.num_sessions = 1
    builder.add(activity)

    try:
        builder.build().to_file(str(path))
    except OSError as exc:
        raise PersistenceError(f"Failed to write {path}: {exc}") from exc
    logger.info("Exported %d records to %s", len(rows), path)
