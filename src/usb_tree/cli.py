"""
Command-line interface for USB Tree.

Usage:
    usb-tree [options]
    usb-tree --format indented_hierarchy saved-lsusb-t.txt
    lsusb | usb-tree --format flat_device_list -
    usb-tree --set-threshold "Mac Apple Silicon" 3 5
"""

import argparse
import json
import logging
import os
import sys
import tempfile
import webbrowser
from pathlib import Path
from typing import Mapping, Optional

from .config_manager import ConfigManager, get_config_manager
from .enumerator import enumerate_usb, is_elevated
from .errors import ConfigError, EnumerationToolUnavailable, NoDevicesDetected
from .models import AppConfig, SourceFormat, StabilityThreshold, TopologyAnalysis
from .pipeline import analyze
from .render import render_text_report, report_timestamp, save_reports
from .server import ScanFn, run_server

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="usb-tree",
        description="Show the USB device tree, its hop depth and per-platform stability.",
        epilog="Example: lsusb -t | usb-tree --format indented_hierarchy -",
    )

    parser.add_argument(
        "file",
        nargs="?",
        help="Read saved enumeration output from a file ('-' for stdin) instead of scanning",
    )

    parser.add_argument(
        "-f", "--format",
        choices=[f.value for f in SourceFormat],
        default=SourceFormat.INDENTED_HIERARCHY.value,
        help="Format of the input file (default: indented_hierarchy)",
    )

    parser.add_argument(
        "--elevated",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Use the full-tree listing (sudo lsusb -t, sudo system_profiler); asked if omitted",
    )

    parser.add_argument(
        "--open",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Open the HTML report in a browser; asked if omitted",
    )

    parser.add_argument("-c", "--config", type=Path, help="Path to the YAML configuration file")
    parser.add_argument("-o", "--output-dir", type=Path, help="Directory for the saved reports")
    parser.add_argument("--no-save", action="store_true", help="Do not write report files")
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")

    parser.add_argument("--serve", action="store_true", help="Serve the live report over HTTP")
    parser.add_argument("--host", help="Server host (default: config, or USB_TREE_HOST)")
    parser.add_argument("--port", type=int, help="Server port (default: config, or USB_TREE_PORT)")

    parser.add_argument(
        "--set-threshold",
        nargs=3,
        metavar=("PLATFORM", "RECOMMENDED", "MAXIMUM"),
        help="Add or replace a platform's hop limits in the configuration file and exit",
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Only log errors",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    parser.add_argument(
        "--version",
        action="store_true",
        help="Show version and exit",
    )

    return parser


def configure_logging(verbose: bool, quiet: bool, default: int = logging.WARNING) -> None:
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = default
    logging.basicConfig(level=level, format=LOG_FORMAT)


def read_input(file_path: str) -> str:
    """Read saved enumeration output from a file or stdin."""
    if file_path == "-":
        return sys.stdin.read()
    try:
        with open(file_path, "r", encoding="utf-8", errors="replace") as f:
            return f.read()
    except FileNotFoundError:
        print(f"Error: File not found: {file_path}", file=sys.stderr)
        sys.exit(EXIT_FAILURE)
    except OSError as e:
        print(f"Error reading file: {e}", file=sys.stderr)
        sys.exit(EXIT_FAILURE)


def ask_yes_no(question: str, default: bool = False) -> bool:
    """Ask a y/n question on an interactive terminal, else return default."""
    if not sys.stdin.isatty():
        return default
    try:
        answer = input(f"{question} (y/n): ")
    except EOFError:
        return default
    return answer.strip().lower() in ("y", "yes")


def load_config(config_path: Optional[Path]) -> ConfigManager:
    """Return a manager whose configuration and threshold table are loaded."""
    manager = ConfigManager(config_path) if config_path else get_config_manager()
    manager.get_thresholds()
    return manager


def make_scanner(
    args: argparse.Namespace,
    config: AppConfig,
    thresholds: Mapping[str, StabilityThreshold],
) -> ScanFn:
    """Build the scan function for a saved input file or a live enumeration."""
    if args.file:
        text = read_input(args.file)
        source_format = SourceFormat(args.format)

        def scan_file() -> TopologyAnalysis:
            return analyze(text, source_format, config, thresholds)

        return scan_file

    if args.elevated is not None:
        elevated = args.elevated
    else:
        elevated = is_elevated() or ask_yes_no("Run with sudo/admin for maximum detail (full tree)?")

    def scan_host() -> TopologyAnalysis:
        enumeration = enumerate_usb(elevated, timeout=config.command_timeout)
        return analyze(enumeration.raw_text, enumeration.source_format, config, thresholds)

    return scan_host


def set_threshold(parser: argparse.ArgumentParser, manager: ConfigManager, values: list[str]) -> int:
    """Store a platform's hop limits in the configuration file."""
    platform_name, recommended, maximum = values
    try:
        recommended_hops, maximum_hops = int(recommended), int(maximum)
    except ValueError:
        parser.error(f"--set-threshold hop limits must be integers, got {recommended!r} {maximum!r}")

    try:
        manager.set_threshold(platform_name, recommended_hops, maximum_hops)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    print(f"{platform_name}: recommended {recommended_hops}, maximum {maximum_hops} hops "
          f"saved to {manager.config_path}")
    return EXIT_OK


def serve(args: argparse.Namespace, config: AppConfig, scan: ScanFn) -> int:
    host = args.host or os.environ.get("USB_TREE_HOST") or config.host
    port = args.port or int(os.environ.get("USB_TREE_PORT", config.port))

    if args.open is not None:
        open_browser = args.open
    else:
        env_open = os.environ.get("USB_TREE_OPEN_BROWSER")
        open_browser = config.auto_open_browser if env_open is None else env_open.lower() not in ("0", "false", "no")

    run_server(scan, host=host, port=port, open_browser=open_browser)
    return EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.version:
        from . import __version__
        print(f"usb-tree {__version__}")
        return EXIT_OK

    configure_logging(args.verbose, args.quiet, logging.INFO if args.serve else logging.WARNING)

    try:
        manager = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    if args.set_threshold:
        return set_threshold(parser, manager, args.set_threshold)

    config = manager.config
    scan = make_scanner(args, config, manager.get_thresholds())

    if args.serve:
        return serve(args, config, scan)

    try:
        analysis = scan()
    except NoDevicesDetected as e:
        print(str(e), file=sys.stderr)
        return EXIT_FAILURE
    except EnumerationToolUnavailable as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    timestamp = report_timestamp()
    if args.json:
        print(json.dumps(analysis.model_dump_for_frontend(), indent=2, ensure_ascii=False))
    else:
        print(render_text_report(analysis, timestamp))

    if args.no_save:
        return EXIT_OK

    output_dir = args.output_dir or Path(config.report_dir or tempfile.gettempdir())
    try:
        text_path, html_path = save_reports(analysis, output_dir, timestamp)
    except OSError as e:
        print(f"Report could not be generated: {e}", file=sys.stderr)
        return EXIT_FAILURE

    print(f"Report saved as: {text_path}", file=sys.stderr)
    print(f"HTML report saved as: {html_path}", file=sys.stderr)

    open_report = args.open if args.open is not None else ask_yes_no("Open HTML report in browser?")
    if open_report:
        if not webbrowser.open(html_path.as_uri()):
            print(f"Please open manually: {html_path}", file=sys.stderr)

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
