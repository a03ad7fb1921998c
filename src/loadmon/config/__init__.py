from __future__ import annotations

from loadmon.config.models import (
    ComparisonThresholds,
    HarnessConfig,
    ServerConfig,
    TargetConfig,
)

__all__ = [
    "ComparisonThresholds",
    "HarnessConfig",
    "ServerConfig",
    "TargetConfig",
]
