"""
USB Tree - USB topology hop depth and per-platform stability report.

Enumerates the host's USB devices, measures how many hubs deep the tree goes
and rates that depth against the hop limits of common host platforms.
"""

__version__ = "0.2.0"

from .errors import (
    UsbTreeError,
    NoDevicesDetected,
    ParseFailed,
    EnumerationToolUnavailable,
    ConfigError,
)
from .models import (
    NodeKind,
    SourceFormat,
    Verdict,
    HostPolicy,
    UsbNode,
    StabilityThreshold,
    StabilityReport,
    TopologyAnalysis,
    AppConfig,
)
from .parser import parse_topology, build_topology, classify_label
from .classifier import classify, assess, DEFAULT_THRESHOLDS
from .pipeline import analyze

__all__ = [
    "UsbTreeError",
    "NoDevicesDetected",
    "ParseFailed",
    "EnumerationToolUnavailable",
    "ConfigError",
    "NodeKind",
    "SourceFormat",
    "Verdict",
    "HostPolicy",
    "UsbNode",
    "StabilityThreshold",
    "StabilityReport",
    "TopologyAnalysis",
    "AppConfig",
    "parse_topology",
    "build_topology",
    "classify_label",
    "classify",
    "assess",
    "DEFAULT_THRESHOLDS",
    "analyze",
]
