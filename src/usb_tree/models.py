"""
Pydantic models for the USB topology tree and its stability assessment.

Defines the data structures shared by the parser, the classifier and the
renderers: the parsed node tree, the per-platform threshold table, the
resulting report and the application configuration.
"""

from __future__ import annotations
from typing import Iterator, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator
from enum import Enum

# Depth of the synthetic root; its direct children sit at 0 hops.
ROOT_DEPTH = -1
ROOT_NAME = "USB Host"


class NodeKind(str, Enum):
    """Coarse node category, decided by the label heuristic in the parser."""
    HUB = "hub"
    DEVICE = "device"


class SourceFormat(str, Enum):
    """Shape of the raw enumeration text handed to the parser."""
    INDENTED_HIERARCHY = "indented_hierarchy"  # lsusb -t
    FLAT_DEVICE_LIST = "flat_device_list"  # lsusb, Get-PnpDevice
    KEY_VALUE_BLOCK = "key_value_block"  # system_profiler SPUSBDataType
    IOREG_TREE = "ioreg_tree"  # ioreg -p IOUSB


class Verdict(str, Enum):
    """Stability verdict for a platform or for the whole host."""
    STABLE = "STABLE"
    POTENTIALLY_UNSTABLE = "POTENTIALLY UNSTABLE"
    NOT_STABLE = "NOT STABLE"

    @property
    def severity(self) -> int:
        """Rank used when aggregating verdicts, higher is worse."""
        return _VERDICT_SEVERITY[self]


_VERDICT_SEVERITY = {
    Verdict.STABLE: 0,
    Verdict.POTENTIALLY_UNSTABLE: 1,
    Verdict.NOT_STABLE: 2,
}


class HostPolicy(str, Enum):
    """How the host verdict is derived from the per-platform verdicts."""
    STRICT = "strict"  # worst verdict across all platforms
    PLATFORM = "platform"  # verdict of one named platform


class UsbNode(BaseModel):
    """One hub or device in the parsed topology tree."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Label as reported by the enumeration tool")
    kind: NodeKind = Field(default=NodeKind.DEVICE)
    depth: int = Field(ge=ROOT_DEPTH, description="Apparent hop count from the host, -1 for the synthetic root")
    children: tuple[UsbNode, ...] = Field(default=(), description="Child nodes in enumeration order")

    @property
    def is_root(self) -> bool:
        """True for the synthetic root returned by the parser."""
        return self.depth == ROOT_DEPTH

    @property
    def is_leaf(self) -> bool:
        return not self.children

    @property
    def is_hub(self) -> bool:
        return self.kind == NodeKind.HUB

    @property
    def display_name(self) -> str:
        """Name with the hub marker appended, as shown in the tree output."""
        if self.is_hub:
            return f"{self.name} [HUB]"
        return self.name

    def walk(self) -> Iterator[UsbNode]:
        """Yield every descendant in pre-order, excluding this node."""
        stack = list(reversed(self.children))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    @property
    def max_hops(self) -> int:
        """Deepest descendant depth, 0 when there are no descendants."""
        return max((node.depth for node in self.walk()), default=0)


class StabilityThreshold(BaseModel):
    """Recommended and absolute hop limits for one target platform."""

    model_config = ConfigDict(frozen=True)

    platform_name: str = Field(min_length=1, description="Platform label e.g. 'Mac Apple Silicon'")
    recommended_max_hops: int = Field(ge=0, description="At or below this the verdict is STABLE")
    absolute_max_hops: int = Field(ge=0, description="Above this the verdict is NOT STABLE")

    @model_validator(mode="after")
    def _check_order(self) -> StabilityThreshold:
        if self.absolute_max_hops < self.recommended_max_hops:
            raise ValueError(
                f"{self.platform_name}: absolute_max_hops ({self.absolute_max_hops}) "
                f"is below recommended_max_hops ({self.recommended_max_hops})"
            )
        return self


# (platform, recommended, maximum) as used by every variant of the tool
DEFAULT_PLATFORM_LIMITS: tuple[tuple[str, int, int], ...] = (
    ("Windows", 5, 7),
    ("Linux", 4, 6),
    ("Mac Intel", 5, 7),
    ("Mac Apple Silicon", 3, 5),
    ("iPad USB-C (M-series)", 2, 4),
    ("iPhone USB-C", 2, 4),
    ("Android Phone (Qualcomm)", 3, 5),
    ("Android Tablet (Exynos)", 2, 4),
)


def default_thresholds() -> list[StabilityThreshold]:
    """Build the built-in threshold table."""
    return [
        StabilityThreshold(platform_name=name, recommended_max_hops=rec, absolute_max_hops=limit)
        for name, rec, limit in DEFAULT_PLATFORM_LIMITS
    ]


class StabilityReport(BaseModel):
    """Classifier output for one parsed tree."""

    model_config = ConfigDict(frozen=True)

    max_hops: int = Field(ge=0, description="Deepest node depth in the tree")
    tier_count: int = Field(ge=1, description="max_hops + 1")
    per_platform_verdict: dict[str, Verdict] = Field(description="Verdict per platform, table order")
    host_verdict: Verdict
    stability_score: int = Field(ge=1, le=10, description="clamp(9 - max_hops, 1, 10)")
    device_count: int = Field(default=0, ge=0)
    hub_count: int = Field(default=0, ge=0)
    host_policy: HostPolicy = Field(default=HostPolicy.STRICT)


class TopologyAnalysis(BaseModel):
    """Parsed tree and report for one enumeration run."""

    tree: UsbNode
    report: StabilityReport
    source_format: SourceFormat
    degraded: bool = Field(default=False, description="True when the parse fell back to an opaque leaf")
    raw_text: str = Field(default="", description="Enumeration output the tree was built from")

    def model_dump_for_frontend(self) -> dict:
        """Serialize for the JSON API, without the raw text."""
        data = self.model_dump(mode="json", exclude={"raw_text"})
        data["report"]["host_verdict_severity"] = self.report.host_verdict.severity
        return data


DEFAULT_METADATA_KEYS: tuple[str, ...] = (
    "Product ID",
    "Vendor ID",
    "Version",
    "Serial Number",
    "Speed",
    "Manufacturer",
    "Location ID",
    "Current Available (mA)",
    "Current Required (mA)",
    "Extra Operating Current (mA)",
    "Built-In",
    "Host Controller Driver",
    "Host Controller Location",
    "PCI Device ID",
    "PCI Revision ID",
    "PCI Vendor ID",
    "Bus Number",
)


class AppConfig(BaseModel):
    """Application configuration."""

    port: int = Field(default=8080)
    host: str = Field(default="127.0.0.1")
    auto_open_browser: bool = Field(default=True)
    indent_unit: int = Field(default=4, ge=1, description="Leading spaces per hop in indented listings")
    metadata_keys: list[str] = Field(default_factory=lambda: list(DEFAULT_METADATA_KEYS))
    host_policy: HostPolicy = Field(default=HostPolicy.STRICT)
    host_platform: Optional[str] = Field(default=None, description="Platform used by the 'platform' host policy")
    report_dir: Optional[str] = Field(default=None, description="Where reports are written, temp dir if unset")
    command_timeout: float = Field(default=15.0, gt=0)
    thresholds: list[StabilityThreshold] = Field(default_factory=default_thresholds)

    @model_validator(mode="after")
    def _check_thresholds(self) -> AppConfig:
        if not self.thresholds:
            raise ValueError("threshold table is empty")

        names = [t.platform_name for t in self.thresholds]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate platforms in threshold table: {', '.join(duplicates)}")

        if self.host_policy == HostPolicy.PLATFORM:
            if not self.host_platform:
                raise ValueError("host_policy 'platform' requires host_platform")
            if self.host_platform not in names:
                raise ValueError(f"host_platform '{self.host_platform}' is not in the threshold table")
        return self
