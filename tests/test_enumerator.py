"""Tests for host USB enumeration."""

import subprocess

import pytest

from usb_tree import enumerator
from usb_tree.enumerator import (
    HostOS,
    detect_host_os,
    enumerate_usb,
    port_depth,
    port_sort_key,
    run_command,
    udev_label,
    udev_listing,
)
from usb_tree.errors import EnumerationToolUnavailable
from usb_tree.models import SourceFormat
from usb_tree.parser import parse_topology


class FakeUdevDevice:
    """Stand-in for pyudev.Device with properties and a sysfs directory."""

    def __init__(self, sys_name, sys_path, properties=None):
        self.sys_name = sys_name
        self.sys_path = str(sys_path)
        self._properties = properties or {}

    def get(self, key, default=None):
        return self._properties.get(key, default)


def make_device(tmp_path, sys_name, device_class="00", **properties):
    sys_path = tmp_path / sys_name
    sys_path.mkdir()
    (sys_path / "bDeviceClass").write_text(f"{device_class}\n")
    return FakeUdevDevice(sys_name, sys_path, properties)


@pytest.fixture
def commands(monkeypatch):
    """Record commands and answer them from a dict keyed by the joined command."""
    calls = []
    outputs = {}

    def fake_run(cmd, timeout=enumerator.DEFAULT_TIMEOUT):
        calls.append(cmd)
        return outputs.get(" ".join(cmd), "")

    monkeypatch.setattr(enumerator, "run_command", fake_run)
    monkeypatch.setattr(enumerator, "is_elevated", lambda: False)
    monkeypatch.setattr(enumerator.shutil, "which", lambda name: f"/usr/bin/{name}")
    return calls, outputs


class TestHostDetection:
    """Tests for OS detection."""

    @pytest.mark.parametrize("system, expected", [
        ("Linux", HostOS.LINUX),
        ("Darwin", HostOS.MACOS),
        ("Windows", HostOS.WINDOWS),
        ("CYGWIN_NT-10.0", HostOS.WINDOWS),
        ("SunOS", HostOS.UNKNOWN),
    ])
    def test_detect(self, system, expected):
        assert detect_host_os(system) == expected

    def test_unsupported_platform(self):
        with pytest.raises(EnumerationToolUnavailable) as excinfo:
            enumerate_usb(host_os=HostOS.UNKNOWN)
        assert "Unsupported platform" in str(excinfo.value)


class TestLinux:
    """Tests for the lsusb strategies."""

    def test_basic_mode_uses_flat_list(self, commands):
        calls, outputs = commands
        outputs["lsusb"] = "Bus 001 Device 002: ID 046d:c52b Logitech, Inc. Unifying Receiver\n"

        result = enumerate_usb(elevated=False, host_os=HostOS.LINUX)

        assert calls == [["lsusb"]]
        assert result.source_format == SourceFormat.FLAT_DEVICE_LIST
        assert "Logitech" in result.raw_text

    def test_elevated_mode_uses_tree(self, commands, lsusb_tree_text):
        calls, outputs = commands
        outputs["sudo lsusb -t"] = lsusb_tree_text

        result = enumerate_usb(elevated=True, host_os=HostOS.LINUX)

        assert calls == [["sudo", "lsusb", "-t"]]
        assert result.source_format == SourceFormat.INDENTED_HIERARCHY

    def test_no_sudo_when_already_root(self, commands, monkeypatch, lsusb_tree_text):
        calls, outputs = commands
        monkeypatch.setattr(enumerator, "is_elevated", lambda: True)
        outputs["lsusb -t"] = lsusb_tree_text

        enumerate_usb(elevated=True, host_os=HostOS.LINUX)
        assert calls == [["lsusb", "-t"]]

    def test_empty_tree_falls_back_to_flat(self, commands):
        calls, outputs = commands
        outputs["lsusb"] = "Bus 001 Device 001: ID 1d6b:0002 Linux Foundation 2.0 root hub\n"

        result = enumerate_usb(elevated=True, host_os=HostOS.LINUX)

        assert calls == [["sudo", "lsusb", "-t"], ["lsusb"]]
        assert result.source_format == SourceFormat.FLAT_DEVICE_LIST

    def test_missing_lsusb_uses_udev(self, commands, monkeypatch):
        monkeypatch.setattr(enumerator.shutil, "which", lambda name: None)
        monkeypatch.setattr(enumerator, "_udev_available", lambda: True)
        sentinel = enumerator.Enumeration("usb1: root hub [HUB]", SourceFormat.INDENTED_HIERARCHY, ["udev"])
        monkeypatch.setattr(enumerator, "enumerate_udev", lambda: sentinel)

        assert enumerate_usb(host_os=HostOS.LINUX) is sentinel

    def test_missing_lsusb_without_udev(self, commands, monkeypatch):
        monkeypatch.setattr(enumerator.shutil, "which", lambda name: None)
        monkeypatch.setattr(enumerator, "_udev_available", lambda: False)

        with pytest.raises(EnumerationToolUnavailable) as excinfo:
            enumerate_usb(host_os=HostOS.LINUX)
        assert excinfo.value.tool == "lsusb"
        assert "usbutils" in str(excinfo.value)


class TestMacAndWindows:
    """Tests for the macOS and Windows strategies."""

    def test_system_profiler(self, commands, system_profiler_text):
        calls, outputs = commands
        outputs["system_profiler SPUSBDataType"] = system_profiler_text

        result = enumerate_usb(host_os=HostOS.MACOS)

        assert calls == [["system_profiler", "SPUSBDataType"]]
        assert result.source_format == SourceFormat.KEY_VALUE_BLOCK

    def test_system_profiler_elevated(self, commands, system_profiler_text):
        calls, outputs = commands
        outputs["sudo system_profiler SPUSBDataType"] = system_profiler_text

        enumerate_usb(elevated=True, host_os=HostOS.MACOS)
        assert calls == [["sudo", "system_profiler", "SPUSBDataType"]]

    def test_ioreg_fallback(self, commands, ioreg_text):
        calls, outputs = commands
        outputs["ioreg -p IOUSB -w 0"] = ioreg_text

        result = enumerate_usb(host_os=HostOS.MACOS)

        assert calls[-1] == ["ioreg", "-p", "IOUSB", "-w", "0"]
        assert result.source_format == SourceFormat.IOREG_TREE

    def test_windows(self, commands):
        calls, outputs = commands

        result = enumerate_usb(elevated=True, host_os=HostOS.WINDOWS)

        assert calls[0][0] == "powershell.exe"
        assert "Get-PnpDevice" in calls[0][-1]
        assert result.source_format == SourceFormat.FLAT_DEVICE_LIST


class TestRunCommand:
    """Tests for subprocess handling."""

    def test_missing_binary(self, monkeypatch):
        def raise_missing(*args, **kwargs):
            raise FileNotFoundError("nope")

        monkeypatch.setattr(enumerator.subprocess, "run", raise_missing)
        with pytest.raises(EnumerationToolUnavailable) as excinfo:
            run_command(["lsusb"])
        assert excinfo.value.tool == "lsusb"

    def test_non_zero_exit_returns_output(self, monkeypatch):
        completed = subprocess.CompletedProcess(["lsusb"], 1, stdout="partial\n", stderr="denied")
        monkeypatch.setattr(enumerator.subprocess, "run", lambda *a, **kw: completed)

        assert run_command(["lsusb"]) == "partial\n"

    def test_timeout_returns_partial_output(self, monkeypatch):
        def time_out(cmd, **kwargs):
            raise subprocess.TimeoutExpired(cmd, kwargs["timeout"], output=b"Bus 001\n")

        monkeypatch.setattr(enumerator.subprocess, "run", time_out)
        assert run_command(["lsusb"], timeout=0.1) == "Bus 001\n"


class TestUdev:
    """Tests for building an indented listing from udev devices."""

    @pytest.mark.parametrize("sys_name, depth", [
        ("usb1", 0),
        ("1-1", 1),
        ("1-1.2", 2),
        ("2-3.1.4", 3),
        ("1-1:1.0", None),
    ])
    def test_port_depth(self, sys_name, depth):
        assert port_depth(sys_name) == depth

    def test_sort_key_orders_children_after_parent(self):
        names = ["1-1.2", "usb2", "1-1", "usb1", "1-10", "1-2", "2-1"]
        assert sorted(names, key=port_sort_key) == ["usb1", "1-1", "1-1.2", "1-2", "1-10", "usb2", "2-1"]

    def test_label(self, tmp_path):
        hub = make_device(tmp_path, "1-1", device_class="09", ID_MODEL_FROM_DATABASE="USB2.0 Hub")
        webcam = make_device(tmp_path, "1-1.2", ID_MODEL="HD_Webcam")
        bare = make_device(tmp_path, "1-3", ID_VENDOR_ID="1234", ID_MODEL_ID="abcd")

        assert udev_label(hub) == "1-1: USB2.0 Hub [HUB]"
        assert udev_label(webcam) == "1-1.2: HD_Webcam"
        assert udev_label(bare) == "1-3: 1234:abcd"

    def test_listing_parses(self, tmp_path):
        devices = [
            make_device(tmp_path, "1-1.2", ID_MODEL="Keyboard"),
            make_device(tmp_path, "usb1", device_class="09", ID_MODEL="xHCI Host Controller"),
            make_device(tmp_path, "1-1", device_class="09", ID_MODEL="Hub"),
            make_device(tmp_path, "1-1:1.0"),
        ]
        text = udev_listing(devices)

        assert text.splitlines() == [
            "usb1: xHCI Host Controller [HUB]",
            "    1-1: Hub [HUB]",
            "        1-1.2: Keyboard",
        ]
        tree = parse_topology(text, SourceFormat.INDENTED_HIERARCHY)
        assert tree.max_hops == 2
