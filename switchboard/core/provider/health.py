"""Per-provider connectivity bookkeeping."""

import time
from dataclasses import dataclass
from typing import Any


@dataclass
class HealthStatus:
    """Connectivity record for one provider id.

    Lives independently of the provider's instance: it may be recorded before
    an instance exists and survives the instance being replaced.
    """

    connected: bool = False
    consecutive_failures: int = 0
    last_check: float | None = None
    last_error: str | None = None

    def record(self, connected: bool, error: str | None = None) -> bool:
        """Merge one observation; returns True when connectivity flipped."""
        changed = self.last_check is None or connected != self.connected
        self.connected = connected
        self.last_check = time.time()
        if connected:
            self.consecutive_failures = 0
            self.last_error = None
        else:
            self.consecutive_failures += 1
            self.last_error = error
        return changed

    def to_dict(self) -> dict[str, Any]:
        return {
            "connected": self.connected,
            "consecutive_failures": self.consecutive_failures,
            "last_check": self.last_check,
            "last_error": self.last_error,
        }
