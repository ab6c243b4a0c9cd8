"""
Stability classification of a parsed USB tree.

Maps the deepest hop count to a verdict per target platform using a static
threshold table, and derives one host verdict plus a coarse 1-10 score.
"""

from __future__ import annotations
import logging
from typing import Iterable, Mapping, Optional, Union

from .errors import ConfigError
from .models import (
    HostPolicy,
    StabilityReport,
    StabilityThreshold,
    UsbNode,
    Verdict,
    default_thresholds,
)

logger = logging.getLogger(__name__)

SCORE_BASE = 9
MIN_SCORE = 1
MAX_SCORE = 10

ThresholdTable = Mapping[str, StabilityThreshold]


def verdict_for(max_hops: int, threshold: StabilityThreshold) -> Verdict:
    """Verdict for one platform; both boundaries fall in the better bucket."""
    if max_hops <= threshold.recommended_max_hops:
        return Verdict.STABLE
    if max_hops <= threshold.absolute_max_hops:
        return Verdict.POTENTIALLY_UNSTABLE
    return Verdict.NOT_STABLE


def aggregate_host_verdict(verdicts: Iterable[Verdict]) -> Verdict:
    """Worst verdict wins; STABLE when there is nothing to aggregate."""
    return max(verdicts, key=lambda v: v.severity, default=Verdict.STABLE)


def host_verdict(
    per_platform: Mapping[str, Verdict],
    policy: HostPolicy = HostPolicy.STRICT,
    host_platform: Optional[str] = None,
) -> Verdict:
    """Derive the host verdict according to the configured policy.

    The 'platform' policy reports a single platform's verdict, typically
    the bottleneck "Mac Apple Silicon".
    """
    if policy == HostPolicy.PLATFORM:
        if host_platform not in per_platform:
            raise ConfigError(f"host_platform '{host_platform}' is not in the threshold table")
        return per_platform[host_platform]
    return aggregate_host_verdict(per_platform.values())


def stability_score(max_hops: int) -> int:
    """clamp(9 - max_hops, 1, 10)."""
    return max(MIN_SCORE, min(MAX_SCORE, SCORE_BASE - max_hops))


def count_nodes(tree: UsbNode) -> tuple[int, int]:
    """Return (device_count, hub_count) over every node below the root hubs.

    Depth 0 entries are the host's root hubs / controllers and are not
    counted, nor is the synthetic root.
    """
    devices = hubs = 0
    for node in tree.walk():
        if node.depth < 1:
            continue
        if node.is_hub:
            hubs += 1
        else:
            devices += 1
    return devices, hubs


def validate_thresholds(
    thresholds: Union[ThresholdTable, Iterable[StabilityThreshold]],
) -> dict[str, StabilityThreshold]:
    """Check a threshold table once and return it keyed by platform name.

    Raises:
        ConfigError: empty table, duplicate platform, a mapping key that does
            not match its record, or a record that is not a StabilityThreshold.
    """
    if isinstance(thresholds, Mapping):
        items = list(thresholds.items())
    else:
        items = [(getattr(t, "platform_name", None), t) for t in thresholds]

    if not items:
        raise ConfigError("threshold table is empty")

    table: dict[str, StabilityThreshold] = {}
    for key, threshold in items:
        if not isinstance(threshold, StabilityThreshold):
            raise ConfigError(f"invalid threshold entry for {key!r}: {threshold!r}")
        if key != threshold.platform_name:
            raise ConfigError(f"threshold key {key!r} does not match platform {threshold.platform_name!r}")
        if key in table:
            raise ConfigError(f"duplicate platform in threshold table: {key}")
        table[key] = threshold

    return table


DEFAULT_THRESHOLDS: dict[str, StabilityThreshold] = validate_thresholds(default_thresholds())


def classify(
    max_hops: int,
    thresholds: ThresholdTable = DEFAULT_THRESHOLDS,
    device_count: int = 0,
    hub_count: int = 0,
    policy: HostPolicy = HostPolicy.STRICT,
    host_platform: Optional[str] = None,
) -> StabilityReport:
    """Classify a hop count against every platform in the table."""
    max_hops = max(0, max_hops)

    per_platform = {
        name: verdict_for(max_hops, threshold)
        for name, threshold in thresholds.items()
    }

    return StabilityReport(
        max_hops=max_hops,
        tier_count=max_hops + 1,
        per_platform_verdict=per_platform,
        host_verdict=host_verdict(per_platform, policy, host_platform),
        stability_score=stability_score(max_hops),
        device_count=device_count,
        hub_count=hub_count,
        host_policy=policy,
    )


def assess(
    tree: UsbNode,
    thresholds: ThresholdTable = DEFAULT_THRESHOLDS,
    policy: HostPolicy = HostPolicy.STRICT,
    host_platform: Optional[str] = None,
) -> StabilityReport:
    """Count the tree's nodes and classify its deepest hop."""
    device_count, hub_count = count_nodes(tree)
    report = classify(
        tree.max_hops,
        thresholds,
        device_count=device_count,
        hub_count=hub_count,
        policy=policy,
        host_platform=host_platform,
    )
    logger.debug(
        f"Assessed {device_count} device(s), {hub_count} hub(s), "
        f"{report.max_hops} hop(s): {report.host_verdict.value}"
    )
    return report
