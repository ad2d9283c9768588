"""Raw BLE characteristic payloads to single metric readings.

Sensor links drop and truncate packets, so every decoder degrades a short or
empty payload to a zero reading instead of raising.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

logger = logging.getLogger(__name__)

HR_FLAG_UINT16 = 0x01

Payload = bytes | bytearray | memoryview | list[int]


class MetricKind(str, Enum):
    HEART_RATE = "heart_rate"
    POWER = "power"
    CADENCE = "cadence"


def decode_heart_rate(data: Payload) -> int:
    if not data:
        return 0
    flags = data[0]
    if flags & HR_FLAG_UINT16 and len(data) >= 3:
        return int(data[1] | (data[2] << 8))
    if len(data) >= 2:
        return int(data[1])
    logger.debug("Heart rate payload too short (%d bytes)", len(data))
    return 0


def decode_power(data: Payload) -> int:
    if not data:
        return 0
    return int(data[0])


def decode_cadence(data: Payload) -> int:
    if not data:
        return 0
    return int(data[0])


DECODERS: dict[MetricKind, Callable[[Payload], int]] = {
    MetricKind.HEART_RATE: decode_heart_rate,
    MetricKind.POWER: decode_power,
    MetricKind.CADENCE: decode_cadence,
}


def decode(kind: MetricKind | str, data: Payload) -> int:
    try:
        decoder = DECODERS[MetricKind(kind)]
    except ValueError:
        logger.debug("No decoder for metric kind %r", kind)
        return 0
    return decoder(data)
