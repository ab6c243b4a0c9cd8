"""
USB enumeration via the platform listing utilities.

Runs lsusb / system_profiler / ioreg / PowerShell and hands the captured text
to the parser together with the SourceFormat it is written in. On Linux
without usbutils the tree is read from udev with pyudev instead.
"""

from __future__ import annotations
import logging
import os
import platform
import re
import shutil
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional

from .errors import EnumerationToolUnavailable
from .models import SourceFormat

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0
UDEV_INDENT = 4

LSUSB_HINT = "Install the usbutils package (apt/yum/dnf/pacman install usbutils)"

WINDOWS_USB_QUERY = (
    "Get-PnpDevice -Class USB -PresentOnly | "
    "Select-Object -ExpandProperty FriendlyName"
)

_PORT_PATH = re.compile(r"^(\d+)-(\d+(?:\.\d+)*)$")
_ROOT_HUB = re.compile(r"^usb(\d+)$")


class HostOS(str, Enum):
    """Operating systems with a known enumeration strategy."""
    LINUX = "linux"
    MACOS = "macos"
    WINDOWS = "windows"
    UNKNOWN = "unknown"


@dataclass
class Enumeration:
    """Raw listing text and the format the parser should read it as."""
    raw_text: str
    source_format: SourceFormat
    command: list[str] = field(default_factory=list)


def detect_host_os(system: Optional[str] = None) -> HostOS:
    """Map platform.system() to a HostOS."""
    system = (system or platform.system()).lower()
    if system.startswith("linux"):
        return HostOS.LINUX
    if system.startswith("darwin"):
        return HostOS.MACOS
    if system.startswith(("windows", "cygwin", "msys", "mingw")):
        return HostOS.WINDOWS
    return HostOS.UNKNOWN


def is_elevated() -> bool:
    """True when already running as root (always False on Windows)."""
    geteuid = getattr(os, "geteuid", None)
    return geteuid is not None and geteuid() == 0


def _privileged(cmd: list[str]) -> list[str]:
    if is_elevated():
        return cmd
    return ["sudo"] + cmd


def run_command(cmd: list[str], timeout: float = DEFAULT_TIMEOUT) -> str:
    """Run a listing command and return its stdout.

    A missing binary raises EnumerationToolUnavailable. A timeout or a
    non-zero exit is logged and whatever was printed is returned.
    """
    logger.debug(f"Running {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError:
        raise EnumerationToolUnavailable(cmd[0])
    except subprocess.TimeoutExpired as e:
        logger.warning(f"{' '.join(cmd)} timed out after {timeout}s")
        output = e.stdout or ""
        return output.decode(errors="replace") if isinstance(output, bytes) else output

    if result.returncode != 0:
        logger.warning(
            f"{' '.join(cmd)} exited with {result.returncode}: {result.stderr.strip()}"
        )
    return result.stdout or ""


def port_depth(port_path: str) -> Optional[int]:
    """Hop depth of a sysfs USB device name.

    "usb1" is a root hub (0), "1-1" is one hop, "1-1.2" two, and so on.
    """
    if _ROOT_HUB.match(port_path):
        return 0
    match = _PORT_PATH.match(port_path)
    if match:
        return match.group(2).count(".") + 1
    return None


def port_sort_key(port_path: str) -> tuple[int, ...]:
    """Sort key placing every port path after its parent (pre-order)."""
    root = _ROOT_HUB.match(port_path)
    if root:
        return (int(root.group(1)),)
    match = _PORT_PATH.match(port_path)
    if match:
        return (int(match.group(1)),) + tuple(int(p) for p in match.group(2).split("."))
    return ()


def _read_sysfs(device: Any, attribute: str) -> Optional[str]:
    try:
        path = Path(device.sys_path) / attribute
        if path.exists():
            return path.read_text().strip()
    except OSError:
        pass
    return None


def udev_label(device: Any) -> str:
    """Label for a udev USB device, marked [HUB] when its class is 0x09."""
    name = (
        device.get("ID_MODEL_FROM_DATABASE")
        or device.get("ID_MODEL")
        or _read_sysfs(device, "product")
    )
    if not name:
        vendor_id = device.get("ID_VENDOR_ID", "0000")
        product_id = device.get("ID_MODEL_ID", "0000")
        name = f"{vendor_id}:{product_id}"

    label = f"{device.sys_name}: {name}"

    device_class = device.get("bDeviceClass") or _read_sysfs(device, "bDeviceClass")
    if device.get("DRIVER") == "hub" or (device_class or "").lower() == "09":
        label += " [HUB]"
    return label


def udev_listing(devices: Iterable[Any]) -> str:
    """Render udev USB devices as an indented hierarchy, one level per hop."""
    entries = []
    for device in devices:
        depth = port_depth(device.sys_name)
        if depth is None:
            continue
        entries.append((port_sort_key(device.sys_name), depth, udev_label(device)))

    entries.sort(key=lambda e: e[0])
    return "\n".join(" " * (depth * UDEV_INDENT) + label for _, depth, label in entries)


def enumerate_udev() -> Enumeration:
    """Read the USB tree from udev."""
    import pyudev

    context = pyudev.Context()
    text = udev_listing(context.list_devices(subsystem="usb", DEVTYPE="usb_device"))
    return Enumeration(text, SourceFormat.INDENTED_HIERARCHY, ["udev"])


def _udev_available() -> bool:
    try:
        import pyudev  # noqa: F401
    except ImportError:
        return False
    return Path("/sys/bus/usb/devices").exists()


def enumerate_linux(elevated: bool, timeout: float = DEFAULT_TIMEOUT) -> Enumeration:
    """lsusb -t when elevated, plain lsusb otherwise, udev without usbutils."""
    if shutil.which("lsusb") is None:
        if _udev_available():
            logger.info("lsusb not found, reading USB tree from udev")
            return enumerate_udev()
        raise EnumerationToolUnavailable("lsusb", LSUSB_HINT)

    if elevated:
        cmd = _privileged(["lsusb", "-t"])
        tree = run_command(cmd, timeout)
        if tree.strip():
            return Enumeration(tree, SourceFormat.INDENTED_HIERARCHY, cmd)
        logger.warning("lsusb -t returned nothing, falling back to the flat device list")

    cmd = ["lsusb"]
    return Enumeration(run_command(cmd, timeout), SourceFormat.FLAT_DEVICE_LIST, cmd)


def enumerate_macos(elevated: bool, timeout: float = DEFAULT_TIMEOUT) -> Enumeration:
    """system_profiler SPUSBDataType, falling back to the ioreg IOUSB plane."""
    cmd = ["system_profiler", "SPUSBDataType"]
    if elevated:
        cmd = _privileged(cmd)

    text = run_command(cmd, timeout)
    if text.strip():
        return Enumeration(text, SourceFormat.KEY_VALUE_BLOCK, cmd)

    logger.info("system_profiler returned nothing, trying ioreg")
    cmd = ["ioreg", "-p", "IOUSB", "-w", "0"]
    return Enumeration(run_command(cmd, timeout), SourceFormat.IOREG_TREE, cmd)


def enumerate_windows(elevated: bool, timeout: float = DEFAULT_TIMEOUT) -> Enumeration:
    """Present USB PnP devices; Windows exposes no hierarchy this way."""
    if elevated:
        logger.debug("Elevation does not change the Windows device list")
    cmd = ["powershell.exe", "-NoProfile", "-Command", WINDOWS_USB_QUERY]
    return Enumeration(run_command(cmd, timeout), SourceFormat.FLAT_DEVICE_LIST, cmd)


def enumerate_usb(
    elevated: bool = False,
    host_os: Optional[HostOS] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Enumeration:
    """Enumerate USB devices with the strategy for the host OS."""
    host_os = host_os or detect_host_os()
    logger.info(f"Enumerating USB devices on {host_os.value} ({'elevated' if elevated else 'basic'} mode)")

    if host_os == HostOS.LINUX:
        return enumerate_linux(elevated, timeout)
    if host_os == HostOS.MACOS:
        return enumerate_macos(elevated, timeout)
    if host_os == HostOS.WINDOWS:
        return enumerate_windows(elevated, timeout)

    raise EnumerationToolUnavailable(
        "USB enumeration",
        f"Unsupported platform: {platform.system() or 'unknown'}",
    )
