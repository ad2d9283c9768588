from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from cadence_coach.decoders import MetricKind

logger = logging.getLogger(__name__)

HR_SERVICE_UUID = "0000180d-0000-1000-8000-00805f9b34fb"
HR_MEASUREMENT_UUID = "00002a37-0000-1000-8000-00805f9b34fb"

STRYD_SERVICE_UUID = "fb005c80-02e7-f387-1cad-8acd2d8df0c8"
STRYD_POWER_FRAGMENT = "fb005c81"
STRYD_CADENCE_FRAGMENT = "fb005c82"


@dataclass(frozen=True)
class DeviceProtocolDescriptor:
    family: str
    name_match: str
    service_uuid: str
    characteristics: dict[str, MetricKind] = field(default_factory=dict)

    def matches(self, advertised_name: str | None) -> bool:
        if not advertised_name:
            return False
        return self.name_match.lower() in advertised_name.lower()

    def kind_for(self, characteristic_uuid: str) -> MetricKind | None:
        needle = characteristic_uuid.lower()
        for key, kind in self.characteristics.items():
            key_l = key.lower()
            if needle == key_l or key_l in needle:
                return kind
        return None

    def has_service(self, service_uuids: Iterable[str]) -> bool:
        wanted = self.service_uuid.lower()
        return any(uuid.lower() == wanted for uuid in service_uuids)


PROTOCOLS: tuple[DeviceProtocolDescriptor, ...] = (
    DeviceProtocolDescriptor(
        family="garmin",
        name_match="garmin",
        service_uuid=HR_SERVICE_UUID,
        characteristics={HR_MEASUREMENT_UUID: MetricKind.HEART_RATE},
    ),
    DeviceProtocolDescriptor(
        family="stryd",
        name_match="stryd",
        service_uuid=STRYD_SERVICE_UUID,
        characteristics={
            STRYD_POWER_FRAGMENT: MetricKind.POWER,
            STRYD_CADENCE_FRAGMENT: MetricKind.CADENCE,
        },
    ),
)


def classify(
    advertised_name: str | None,
    protocols: Iterable[DeviceProtocolDescriptor] = PROTOCOLS,
) -> DeviceProtocolDescriptor | None:
    for descriptor in protocols:
        if descriptor.matches(advertised_name):
            return descriptor
    logger.debug("Ignoring unrecognized device %r", advertised_name)
    return None
