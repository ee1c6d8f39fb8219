"""Service connectivity probes."""

from .base import ConnectionTestResult, ServiceProbe, ConfigurationProbe

__all__ = [
    "ConnectionTestResult",
    "ServiceProbe",
    "ConfigurationProbe",
]
