from __future__ import annotations


class CoachError(Exception):
    pass


class TransportError(CoachError):
    """Connect, service discovery or subscribe failed on the BLE link."""


class PersistenceError(CoachError):
    """The sample store could not be written or read."""
