"""Command line entry point: scan sensors, run a coached session, export."""

from __future__ import annotations

import argparse
import logging
import time
from dataclasses import replace
from pathlib import Path

from cadence_coach.advisory import AdvisoryResult, EfficiencyUnit
from cadence_coach.bridge import DeviceChoice, SensorBridge
from cadence_coach.config import TICK_SECONDS, CoachSettings
from cadence_coach.errors import CoachError, PersistenceError, TransportError
from cadence_coach.export import export_fit, export_samples_csv, export_telemetry_csv
from cadence_coach.fusion import MetricSnapshot
from cadence_coach.session import CoachSession
from cadence_coach.store import SampleRecorder, SampleStore

logger = logging.getLogger(__name__)


def positive_int(raw: str) -> int:
    value = int(raw)
    if value <= 0:
        raise argparse.ArgumentTypeError(f"must be > 0, got {raw}")
    return value


def positive_float(raw: str) -> float:
    value = float(raw)
    if value <= 0:
        raise argparse.ArgumentTypeError(f"must be > 0, got {raw}")
    return value


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="cadence-coach",
        description="Live efficiency and cadence prompts from BLE heart-rate and foot/power pods.",
    )
    parser.add_argument("--data-dir", default=None, help="Directory holding the sample database.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="List supported sensors in range.")
    scan.add_argument("--timeout", type=positive_float, default=None)

    run = sub.add_parser("run", help="Connect sensors and coach cadence.")
    run.add_argument("--timeout", type=positive_float, default=None, help="Scan timeout in seconds.")
    run.add_argument("--seconds", type=positive_float, default=None, help="Stop after this many seconds.")
    run.add_argument("--address", action="append", default=[], help="Only bind these addresses.")
    run.add_argument("--pace", type=positive_int, default=None, help="Pace in seconds per km.")
    run.add_argument("--sample-seconds", type=positive_float, default=None, help="Capture interval.")

    export = sub.add_parser("export", help="Export recorded data.")
    export.add_argument("--csv", default=None, help="Telemetry CSV (Timestamp, Cadence, Power, HR).")
    export.add_argument("--samples-csv", default=None, help="Efficiency samples CSV.")
    export.add_argument("--fit", default=None, help="FIT activity file.")

    history = sub.add_parser("history", help="Print stored efficiency samples.")
    history.add_argument("--limit", type=int, default=20)
    return parser.parse_args(argv)


def build_settings(ns: argparse.Namespace) -> CoachSettings:
    settings = CoachSettings.from_env()
    if ns.data_dir:
        settings = replace(settings, data_dir=Path(ns.data_dir).expanduser())
    if getattr(ns, "timeout", None) is not None:
        settings = replace(settings, scan_timeout_s=float(ns.timeout))
    if getattr(ns, "pace", None) is not None:
        settings = replace(settings, pace_sec_per_km=int(ns.pace))
    if getattr(ns, "sample_seconds", None) is not None:
        settings = replace(settings, sample_seconds=float(ns.sample_seconds))
    return settings


def format_status(snapshot: MetricSnapshot, advisory: AdvisoryResult) -> str:
    if advisory.efficiency_unit == EfficiencyUnit.POWER_PER_BEAT:
        eff = f"{advisory.efficiency_value:.2f} W/beat"
    else:
        eff = f"{advisory.efficiency_value:.4f} min/km/beat"
    return (
        f"HR {snapshot.heart_rate_bpm:3d} bpm | Cad {snapshot.cadence_spm:3d} | "
        f"Pwr {snapshot.power_watts:3d} W | Eff {eff} | {advisory.prompt_text}"
    )


def connect_sensors(bridge: SensorBridge, choices: list[DeviceChoice]) -> list[DeviceChoice]:
    bound: list[DeviceChoice] = []
    for choice in choices:
        try:
            kinds = bridge.connect(choice).result()
        except TransportError as exc:
            print(f"Could not bind {choice.name}: {exc}")
            continue
        print(f"Bound {choice.name} [{choice.family}]: {', '.join(k.value for k in kinds)}")
        bound.append(choice)
    return bound


def run_session(
    session: CoachSession,
    settings: CoachSettings,
    seconds: float | None = None,
    clock=time.monotonic,
    sleep=time.sleep,
) -> int:
    """Print prompt changes and capture a sample every sample interval."""
    started = clock()
    next_sample = started + settings.sample_seconds
    last_prompt: str | None = None
    captured = 0
    while seconds is None or clock() - started < seconds:
        snapshot, advisory = session.state()
        if advisory.prompt_text != last_prompt:
            print(format_status(snapshot, advisory))
            last_prompt = advisory.prompt_text
        now = clock()
        if now >= next_sample:
            session.capture()
            captured += 1
            next_sample = now + settings.sample_seconds
        sleep(TICK_SECONDS)
    return captured


def cmd_scan(settings: CoachSettings) -> int:
    bridge = SensorBridge(CoachSession())
    try:
        choices = bridge.scan(settings.scan_timeout_s).result()
    finally:
        bridge.shutdown()
    if not choices:
        print("No supported sensors found.")
        return 1
    for choice in choices:
        print(f"{choice.name:24} {choice.address:20} {choice.rssi:+d} dBm  [{choice.family}]")
    return 0


def cmd_run(settings: CoachSettings, ns: argparse.Namespace) -> int:
    settings.ensure_dir()
    store = SampleStore(settings.db_path)
    session = CoachSession(SampleRecorder(store))
    session.set_pace(settings.pace_sec_per_km)
    bridge = SensorBridge(session)
    try:
        choices = bridge.scan(settings.scan_timeout_s).result()
        if ns.address:
            wanted = {a.lower() for a in ns.address}
            choices = [c for c in choices if c.address.lower() in wanted]
        if not connect_sensors(bridge, choices):
            print("No sensors bound.")
            return 1
        try:
            captured = run_session(session, settings, seconds=ns.seconds)
        except KeyboardInterrupt:
            captured = None
        if captured is not None:
            print(f"Captured {captured} sample(s).")
        return 0
    finally:
        bridge.shutdown()
        store.close()


def cmd_export(settings: CoachSettings, ns: argparse.Namespace) -> int:
    if not (ns.csv or ns.samples_csv or ns.fit):
        print("Nothing to export: pass --csv, --samples-csv or --fit.")
        return 2
    store = SampleStore(settings.db_path)
    try:
        if ns.csv:
            count = export_telemetry_csv(store.list_telemetry(), Path(ns.csv))
            print(f"Saved {count} rows: {ns.csv}")
        if ns.samples_csv:
            count = export_samples_csv(store.list_samples(), Path(ns.samples_csv))
            print(f"Saved {count} samples: {ns.samples_csv}")
        if ns.fit:
            export_fit(store.list_telemetry(), Path(ns.fit))
            print(f"Saved: {ns.fit}")
    finally:
        store.close()
    return 0


def cmd_history(settings: CoachSettings, limit: int) -> int:
    store = SampleStore(settings.db_path)
    try:
        samples = store.list_samples(limit=limit)
    finally:
        store.close()
    for sample in samples:
        print(f"{sample.time.isoformat()}  {sample.efficiency:8.4f}  {sample.rhythm:4d}  {sample.prompt}")
    return 0


def main(argv: list[str] | None = None) -> int:
    ns = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if ns.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        settings = build_settings(ns)
        if ns.command == "scan":
            return cmd_scan(settings)
        if ns.command == "run":
            return cmd_run(settings, ns)
        if ns.command == "export":
            return cmd_export(settings, ns)
        return cmd_history(settings, ns.limit)
    except PersistenceError as exc:
        logger.error("Storage error: %s", exc)
        return 1
    except (CoachError, RuntimeError, ValueError) as exc:
        logger.error("%s", exc)
        return 1
