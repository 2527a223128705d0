"""Route group exports."""

from . import health, remittance, statuses, tracking

__all__ = ["health", "statuses", "tracking", "remittance"]
