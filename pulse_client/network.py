"""Network availability checks consulted before automatic reconnects."""

from typing import Protocol


class NetworkAvailability(Protocol):
    def is_available(self) -> bool: ...


class AlwaysAvailable:
    """Default checker for hosts without a reachability monitor."""

    def is_available(self) -> bool:
        return True


class ManualAvailability:
    """Availability flag flipped by an external monitor."""

    def __init__(self, available: bool = True):
        self.available = available

    def is_available(self) -> bool:
        return self.available
