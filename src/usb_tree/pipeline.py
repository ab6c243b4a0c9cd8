"""
Parse-then-classify pipeline.

The one boundary the rest of the tool depends on:
(raw enumeration text, source format) -> TopologyAnalysis.
"""

from __future__ import annotations
import logging
from typing import Mapping, Optional

from .classifier import assess, validate_thresholds
from .models import AppConfig, SourceFormat, StabilityThreshold, TopologyAnalysis
from .parser import build_topology

logger = logging.getLogger(__name__)


def analyze(
    raw_text: str,
    source_format: SourceFormat,
    config: Optional[AppConfig] = None,
    thresholds: Optional[Mapping[str, StabilityThreshold]] = None,
) -> TopologyAnalysis:
    """Build the tree and stability report for one enumeration run.

    Raises NoDevicesDetected for empty input; a text that yields no nodes
    is reported as a single opaque entry with degraded=True.

    thresholds is the already validated table, as returned by
    ConfigManager.get_thresholds(). Without it the config's table is
    validated on this call.
    """
    config = config or AppConfig()
    if thresholds is None:
        thresholds = validate_thresholds(config.thresholds)

    tree, degraded = build_topology(
        raw_text,
        source_format,
        indent_unit=config.indent_unit,
        metadata_keys=config.metadata_keys,
    )
    if degraded:
        logger.warning("No devices parsed from enumeration output, reporting raw data")

    report = assess(
        tree,
        thresholds,
        policy=config.host_policy,
        host_platform=config.host_platform,
    )

    return TopologyAnalysis(
        tree=tree,
        report=report,
        source_format=source_format,
        degraded=degraded,
        raw_text=raw_text,
    )
