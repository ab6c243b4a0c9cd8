"""Shared fixtures for the USB Tree tests."""

import pytest
from pathlib import Path


FIXTURES_DIR = Path(__file__).parent / "fixtures"


def read_fixture(name: str) -> str:
    with open(FIXTURES_DIR / name, encoding="utf-8") as f:
        return f.read()


@pytest.fixture
def simple_tree_text():
    """Root hub, one hub with one device, one device on the root hub."""
    return read_fixture("simple_tree.txt")


@pytest.fixture
def lsusb_tree_text():
    """lsusb -t output with two buses and three hops at the deepest."""
    return read_fixture("lsusb_tree.txt")


@pytest.fixture
def lsusb_flat_text():
    """Plain lsusb output."""
    return read_fixture("lsusb_flat.txt")


@pytest.fixture
def system_profiler_text():
    """system_profiler SPUSBDataType output with a hub and an SSD."""
    return read_fixture("system_profiler.txt")


@pytest.fixture
def ioreg_text():
    """ioreg -p IOUSB output."""
    return read_fixture("ioreg.txt")
