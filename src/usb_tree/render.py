"""
Text and HTML report generation.

Renders a TopologyAnalysis as the indented box-drawing tree, a plain-text
summary of the stability table, and a static HTML page built from a Jinja2
template.
"""

from __future__ import annotations
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .models import StabilityReport, TopologyAnalysis, UsbNode, Verdict

logger = logging.getLogger(__name__)

PACKAGE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = PACKAGE_DIR / "templates"
HTML_TEMPLATE = "report.html"

WIDTH = 78
PLATFORM_COLUMN = 25
REPORT_PREFIX = "usb-tree-report"

HOP_CAVEAT = (
    "Hop counts are as reported by the enumeration tool and may not match "
    "the physical bus topology."
)
DEGRADED_NOTICE = "Warning: No devices parsed. Showing raw enumeration data."

# CSS class per verdict in the HTML report
VERDICT_COLORS = {
    Verdict.STABLE: "green",
    Verdict.POTENTIALLY_UNSTABLE: "yellow",
    Verdict.NOT_STABLE: "magenta",
}

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


def report_timestamp(now: Optional[datetime] = None) -> str:
    """Timestamp used in report titles and file names, e.g. 20240131-142501."""
    return (now or datetime.now()).strftime("%Y%m%d-%H%M%S")


def tree_line(prefix: str, node: UsbNode) -> str:
    return f"{prefix}{node.display_name} ← {node.depth} hops"


def _tree_lines(node: UsbNode, indent: str, is_last: bool, top_level: bool) -> list[str]:
    lines = []
    stack = [(node, indent, is_last, top_level)]
    while stack:
        current, indent, is_last, top_level = stack.pop()
        if top_level:
            prefix, child_indent = "", ""
        else:
            prefix = indent + ("└── " if is_last else "├── ")
            child_indent = indent + ("    " if is_last else "│   ")

        lines.append(tree_line(prefix, current))
        last = len(current.children) - 1
        for i in range(last, -1, -1):
            stack.append((current.children[i], child_indent, i == last, False))
    return lines


def render_tree(tree: UsbNode) -> str:
    """
    Render the tree, one node per line.

    Depth-0 entries start at the left margin, deeper entries are drawn with
    box-drawing connectors. An entry at depth 1 or more directly under the
    synthetic root (a flat listing) gets a connector as well.

    Args:
        tree: Synthetic root returned by the parser

    Returns:
        Lines of the form "<prefix><name>[ [HUB]] ← <depth> hops"
    """
    nodes = tree.children if tree.is_root else (tree,)
    lines = []
    for i, node in enumerate(nodes):
        lines.extend(_tree_lines(node, "", i == len(nodes) - 1, node.depth <= 0))
    return "\n".join(lines)


def verdict_rows(report: StabilityReport) -> list[tuple[str, Verdict]]:
    return list(report.per_platform_verdict.items())


def render_summary(report: StabilityReport) -> str:
    """Render totals, the per-platform table and the host summary."""
    lines = [
        f"Furthest jumps: {report.max_hops}",
        f"Number of tiers: {report.tier_count}",
        f"Total devices: {report.device_count}",
        f"Total hubs: {report.hub_count}",
        "",
        "=" * WIDTH,
        f"STABILITY PER PLATFORM (based on {report.max_hops} hops)",
        "=" * WIDTH,
    ]
    for platform_name, verdict in verdict_rows(report):
        lines.append(f"  {platform_name:<{PLATFORM_COLUMN}} {verdict.value}")

    lines.extend([
        "",
        "=" * WIDTH,
        "HOST SUMMARY",
        "=" * WIDTH,
        f"  Host status:     {report.host_verdict.value}",
        f"  Stability Score: {report.stability_score}/10",
        "",
        HOP_CAVEAT,
    ])
    return "\n".join(lines)


def render_text_report(analysis: TopologyAnalysis, timestamp: Optional[str] = None) -> str:
    """Render the full plain-text report."""
    timestamp = timestamp or report_timestamp()
    lines = [
        "=" * WIDTH,
        f"USB TREE REPORT - {timestamp}",
        "=" * WIDTH,
        "",
    ]
    if analysis.degraded:
        lines.append(DEGRADED_NOTICE)
    lines.append(render_tree(analysis.tree))
    lines.append("")
    lines.append(render_summary(analysis.report))
    return "\n".join(lines) + "\n"


def render_html(analysis: TopologyAnalysis, timestamp: Optional[str] = None) -> str:
    """Render the HTML report from the Jinja2 template."""
    timestamp = timestamp or report_timestamp()
    template = _env.get_template(HTML_TEMPLATE)
    report = analysis.report
    return template.render(
        timestamp=timestamp,
        separator="=" * WIDTH,
        tree_text=render_tree(analysis.tree),
        degraded=analysis.degraded,
        degraded_notice=DEGRADED_NOTICE,
        report=report,
        platforms=[
            (f"{name:<{PLATFORM_COLUMN}}", verdict.value, VERDICT_COLORS[verdict])
            for name, verdict in verdict_rows(report)
        ],
        host_color=VERDICT_COLORS[report.host_verdict],
        caveat=HOP_CAVEAT,
    )


def save_reports(
    analysis: TopologyAnalysis,
    output_dir: Path,
    timestamp: Optional[str] = None,
) -> tuple[Path, Path]:
    """Write the text and HTML reports, returning (text_path, html_path)."""
    timestamp = timestamp or report_timestamp()
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    text_path = output_dir / f"{REPORT_PREFIX}-{timestamp}.txt"
    html_path = output_dir / f"{REPORT_PREFIX}-{timestamp}.html"

    text_path.write_text(render_text_report(analysis, timestamp), encoding="utf-8")
    html_path.write_text(render_html(analysis, timestamp), encoding="utf-8")

    logger.info(f"Reports saved as {text_path} and {html_path}")
    return text_path, html_path
