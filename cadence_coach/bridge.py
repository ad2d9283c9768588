from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any

from bleak import BleakClient, BleakScanner

from cadence_coach.config import CONNECT_TIMEOUT_SECONDS, SCAN_TIMEOUT_SECONDS
from cadence_coach.decoders import MetricKind
from cadence_coach.devices import DeviceProtocolDescriptor, classify
from cadence_coach.errors import TransportError
from cadence_coach.session import CoachSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceChoice:
    name: str
    address: str
    rssi: int
    family: str


class SensorBridge:
    """Runs bleak on a private event loop thread and feeds the session.

    Every notification, whatever device or characteristic it came from, is
    queued and applied by a single consumer task, one event at a time.
    """

    def __init__(self, session: CoachSession) -> None:
        self.session = session
        self._lock = threading.Lock()
        self._state: dict[str, Any] = {
            "status": "Disconnected",
            "last_error": None,
            "devices": {},
        }
        self._clients: dict[str, BleakClient] = {}
        self._queue: asyncio.Queue[tuple[MetricKind, bytes]] | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._loop = asyncio.new_event_loop()
        self._ready = threading.Event()
        self._thread = threading.Thread(target=self._run_loop, daemon=True)
        self._thread.start()
        self._ready.wait(timeout=5.0)

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._queue = asyncio.Queue()
        self._consumer = self._loop.create_task(self._consume())
        self._ready.set()
        self._loop.run_forever()
        pending = asyncio.all_tasks(self._loop)
        for task in pending:
            task.cancel()
        if pending:
            self._loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        self._loop.close()

    def _set_state(self, **updates: Any) -> None:
        with self._lock:
            self._state.update(updates)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            out = dict(self._state)
            out["devices"] = dict(self._state["devices"])
            return out

    def _submit(self, coro: Any) -> Future:
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def scan(self, timeout: float = SCAN_TIMEOUT_SECONDS) -> Future:
        return self._submit(self._scan(timeout))

    def connect(self, choice: DeviceChoice) -> Future:
        return self._submit(self._connect(choice))

    def disconnect_all(self) -> Future:
        return self._submit(self._disconnect_all())

    def drain(self) -> Future:
        return self._submit(self._drain())

    def shutdown(self) -> None:
        try:
            self.disconnect_all().result(timeout=8.0)
        except Exception:
            logger.warning("Disconnect during shutdown failed", exc_info=True)
        if self._loop.is_running():
            self._loop.call_soon_threadsafe(self._loop.stop)
        if self._thread.is_alive():
            self._thread.join(timeout=5.0)

    def notification_handler(self, kind: MetricKind) -> Callable[[Any, bytearray], None]:
        def handler(_sender: Any, data: bytearray) -> None:
            if self._queue is not None:
                self._queue.put_nowait((kind, bytes(data)))

        return handler

    async def _consume(self) -> None:
        assert self._queue is not None
        while True:
            kind, data = await self._queue.get()
            try:
                self.session.handle_payload(kind, data)
            except Exception:
                logger.exception("Advisory listener failed for %s update", kind.value)
            finally:
                self._queue.task_done()

    async def _drain(self) -> None:
        if self._queue is not None:
            await self._queue.join()

    async def _scan(self, timeout: float) -> list[DeviceChoice]:
        self._set_state(status=f"Scanning BLE for sensors ({int(timeout)}s)...")
        try:
            found = await BleakScanner.discover(timeout=timeout, return_adv=True)
        except Exception as exc:
            self._set_state(status=f"Scan failed: {exc}", last_error=str(exc))
            raise TransportError(f"BLE scan failed: {exc}") from exc
        entries = found.values() if isinstance(found, dict) else [(d, None) for d in found]
        devices: list[DeviceChoice] = []
        for device, adv in entries:
            name = (getattr(adv, "local_name", "") or getattr(device, "name", "") or "").strip()
            descriptor = classify(name)
            if descriptor is None:
                continue
            addr = getattr(device, "address", "")
            rssi = int(getattr(adv, "rssi", -999) or -999)
            devices.append(DeviceChoice(name=name, address=addr, rssi=rssi, family=descriptor.family))
        devices.sort(key=lambda d: (-d.rssi, d.name))
        logger.info("Scan complete: %d recognized sensor(s)", len(devices))
        self._set_state(status=f"Scan complete: {len(devices)} sensor(s) found")
        return devices

    async def _connect(self, choice: DeviceChoice) -> list[MetricKind]:
        descriptor = classify(choice.name)
        if descriptor is None:
            raise TransportError(f"{choice.name!r} is not a supported sensor.")
        await self._disconnect(choice.address)
        self._set_state(status=f"Connecting {choice.name}...", last_error=None)
        try:
            device = await BleakScanner.find_device_by_address(choice.address, timeout=CONNECT_TIMEOUT_SECONDS)
            if device is None:
                raise TransportError(f"{choice.name} not found.")

            client = BleakClient(device, disconnected_callback=self._on_disconnected)
            await client.connect()
            self._clients[choice.address] = client
            kinds = await self._subscribe(client, descriptor)
        except Exception as exc:
            await self._disconnect(choice.address)
            self._set_state(last_error=str(exc), status=f"Connect failed: {exc}")
            logger.warning("Connect to %s failed: %s", choice.name, exc)
            if isinstance(exc, TransportError):
                raise
            raise TransportError(f"Connect to {choice.name} failed: {exc}") from exc

        with self._lock:
            self._state["devices"][choice.address] = choice.name
        logger.info("Connected %s (%s): %s", choice.name, descriptor.family, ", ".join(k.value for k in kinds))
        self._set_state(status=f"Connected: {choice.name}", last_error=None)
        return kinds

    async def _subscribe(self, client: BleakClient, descriptor: DeviceProtocolDescriptor) -> list[MetricKind]:
        services = list(client.services)
        if not descriptor.has_service(s.uuid for s in services):
            raise TransportError(f"Service {descriptor.service_uuid} missing on device.")
        kinds: list[MetricKind] = []
        for service in services:
            if service.uuid.lower() != descriptor.service_uuid.lower():
                continue
            for char in service.characteristics:
                kind = descriptor.kind_for(char.uuid)
                if kind is None or "notify" not in char.properties:
                    continue
                await client.start_notify(char, self.notification_handler(kind))
                kinds.append(kind)
        if not kinds:
            raise TransportError(f"No {descriptor.family} characteristics to subscribe.")
        return kinds

    async def _disconnect(self, address: str) -> None:
        client = self._clients.pop(address, None)
        with self._lock:
            self._state["devices"].pop(address, None)
        if client is None:
            return
        try:
            await client.disconnect()
        except Exception as exc:
            logger.debug("Disconnect from %s raised: %s", address, exc)

    async def _disconnect_all(self) -> None:
        for address in list(self._clients):
            await self._disconnect(address)
        self._set_state(status="Disconnected")

    def _on_disconnected(self, client: BleakClient) -> None:
        address = getattr(client, "address", None)
        logger.warning("Connection lost: %s", address)
        if address is not None:
            self._clients.pop(address, None)
            with self._lock:
                self._state["devices"].pop(address, None)
        self._set_state(status="Connection lost")
