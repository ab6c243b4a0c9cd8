"""
Parser for USB enumeration output.

This module turns the text printed by a platform listing utility (lsusb -t,
lsusb, system_profiler, ioreg, Get-PnpDevice) into a tree of UsbNode objects.
Depth is taken purely from the layout of the text, so it is the hop count as
reported by the tool, not a verified bus distance.
"""

import logging
import re
from dataclasses import dataclass
from functools import partial, reduce
from typing import Callable, Iterable, NamedTuple, Optional

from .errors import NoDevicesDetected, ParseFailed
from .models import (
    DEFAULT_METADATA_KEYS,
    ROOT_DEPTH,
    ROOT_NAME,
    NodeKind,
    SourceFormat,
    UsbNode,
)

logger = logging.getLogger(__name__)

DEFAULT_INDENT_UNIT = 4
IOREG_INDENT_UNIT = 2
FLAT_DEPTH = 1
UNKNOWN_DEVICE = "Unknown Device"

# Leading tree glyphs: lsusb -t "|__", box drawing, ioreg "+-o", root "/:"
_TREE_GLYPHS = re.compile(r"^(?:\|__|\+-o|/:|[|│├└┬─]+)\s*")
_HOPS_SUFFIX = re.compile(r"\s*←\s*\d+\s*hops?\s*$")
_HUB_MARKER = re.compile(r"\s*\[HUB\]\s*", re.IGNORECASE)
_LSUSB_LINE = re.compile(
    r"^Bus\s+\d+\s+Device\s+\d+:\s+ID\s+[0-9a-fA-F]{4}:[0-9a-fA-F]{4}\s*(.*)$"
)
_SEPARATOR = re.compile(r"^[-=_\s]+$")
_IOREG_NAME = re.compile(r"\+-o\s+([^@<]+)")


def classify_label(text: str) -> NodeKind:
    """Classify a line as hub or device by a case-insensitive 'hub' match.

    Known to misfire ("Hubert Webcam" is a hub, a hub reporting only its
    product name is a device). Pass another callable to parse_topology to
    replace it.
    """
    if "hub" in text.lower():
        return NodeKind.HUB
    return NodeKind.DEVICE


@dataclass(frozen=True)
class ParsedLine:
    """A line that produced a node, before it is placed in the tree."""
    depth: int
    name: str
    kind: NodeKind


class _Cons(NamedTuple):
    """Newest-first linked list cell; appending shares the existing tail."""
    head: ParsedLine
    tail: Optional["_Cons"]


class _ParseState(NamedTuple):
    entries: Optional[_Cons] = None
    skipped: int = 0

    def entries_in_order(self) -> tuple[ParsedLine, ...]:
        collected = []
        cell = self.entries
        while cell is not None:
            collected.append(cell.head)
            cell = cell.tail
        collected.reverse()
        return tuple(collected)


LineInterpreter = Callable[[str], Optional[ParsedLine]]


def _indent_of(line: str) -> int:
    return len(line) - len(line.lstrip())


def clean_label(text: str) -> str:
    """Strip tree glyphs, hop suffixes and the hub marker from a label."""
    label = _HOPS_SUFFIX.sub("", text.strip())
    previous = None
    while previous != label:
        previous = label
        label = _TREE_GLYPHS.sub("", label)
    label = _HUB_MARKER.sub(" ", label)
    return " ".join(label.split())


def _interpret_indented(
    line: str,
    indent_unit: int,
    classify: Callable[[str], NodeKind],
) -> Optional[ParsedLine]:
    content = line.strip()
    name = clean_label(content)
    if not name:
        return None
    return ParsedLine(depth=_indent_of(line) // indent_unit, name=name, kind=classify(content))


def _interpret_flat(line: str, classify: Callable[[str], NodeKind]) -> Optional[ParsedLine]:
    content = line.strip()
    if _SEPARATOR.match(content):
        return None

    match = _LSUSB_LINE.match(content)
    if match:
        name = match.group(1).strip() or UNKNOWN_DEVICE
    else:
        name = clean_label(content)
        if not name:
            return None

    return ParsedLine(depth=FLAT_DEPTH, name=name, kind=classify(content))


def _interpret_key_value(
    line: str,
    indent_unit: int,
    metadata_keys: tuple[str, ...],
    classify: Callable[[str], NodeKind],
) -> Optional[ParsedLine]:
    content = line.strip()
    if content.startswith(metadata_keys):
        return None
    if not content.endswith(":"):
        return None

    name = content[:-1].strip()
    if not name:
        return None
    return ParsedLine(depth=_indent_of(line) // indent_unit, name=name, kind=classify(content))


def _interpret_ioreg(line: str, classify: Callable[[str], NodeKind]) -> Optional[ParsedLine]:
    column = line.find("+-o")
    if column < 0:
        return None

    match = _IOREG_NAME.search(line)
    if not match:
        return None

    name = match.group(1).strip()
    if not name:
        return None
    return ParsedLine(depth=column // IOREG_INDENT_UNIT, name=name, kind=classify(name))


def get_line_interpreter(
    source_format: SourceFormat,
    indent_unit: int = DEFAULT_INDENT_UNIT,
    metadata_keys: Iterable[str] = DEFAULT_METADATA_KEYS,
    classify: Callable[[str], NodeKind] = classify_label,
) -> LineInterpreter:
    """Return the per-line strategy for a source format."""
    if source_format == SourceFormat.INDENTED_HIERARCHY:
        return partial(_interpret_indented, indent_unit=indent_unit, classify=classify)
    if source_format == SourceFormat.FLAT_DEVICE_LIST:
        return partial(_interpret_flat, classify=classify)
    if source_format == SourceFormat.KEY_VALUE_BLOCK:
        # str.startswith wants a tuple; compare against "Key:" so that
        # "Version" does not swallow a device called "Versionizer:"
        keys = tuple(f"{key.rstrip(':')}:" for key in metadata_keys)
        return partial(_interpret_key_value, indent_unit=indent_unit, metadata_keys=keys, classify=classify)
    if source_format == SourceFormat.IOREG_TREE:
        return partial(_interpret_ioreg, classify=classify)
    raise ValueError(f"Unsupported source format: {source_format}")


def _step(interpret: LineInterpreter, state: _ParseState, line: str) -> _ParseState:
    """Fold one line into the accumulator."""
    if not line.strip():
        return state

    entry = interpret(line)
    if entry is None:
        logger.debug(f"Skipping line: {line.strip()!r}")
        return state._replace(skipped=state.skipped + 1)

    return state._replace(entries=_Cons(entry, state.entries))


class _Frame(NamedTuple):
    entry: Optional[ParsedLine]
    children: list


def _close(frame: _Frame) -> UsbNode:
    entry = frame.entry
    return UsbNode(name=entry.name, kind=entry.kind, depth=entry.depth, children=tuple(frame.children))


def _build_children(entries: Iterable[ParsedLine]) -> tuple[UsbNode, ...]:
    """Build the root's children from pre-order entries with an explicit stack.

    A jump of more than one level is kept as-is: the entry becomes a child
    of the nearest preceding shallower entry.
    """
    root = _Frame(None, [])
    stack = [root]
    for entry in entries:
        while stack[-1] is not root and stack[-1].entry.depth >= entry.depth:
            closed = stack.pop()
            stack[-1].children.append(_close(closed))
        stack.append(_Frame(entry, []))

    while stack[-1] is not root:
        closed = stack.pop()
        stack[-1].children.append(_close(closed))
    return tuple(root.children)


def parse_lines(
    raw_text: str,
    source_format: SourceFormat,
    indent_unit: int = DEFAULT_INDENT_UNIT,
    metadata_keys: Iterable[str] = DEFAULT_METADATA_KEYS,
    classify: Callable[[str], NodeKind] = classify_label,
) -> tuple[ParsedLine, ...]:
    """Interpret every line of the raw text in a single pass."""
    interpret = get_line_interpreter(source_format, indent_unit, metadata_keys, classify)
    state = reduce(partial(_step, interpret), raw_text.splitlines(), _ParseState())

    if state.skipped:
        logger.debug(f"Skipped {state.skipped} unparseable line(s) in {source_format.value} input")
    return state.entries_in_order()


def parse_topology(
    raw_text: str,
    source_format: SourceFormat,
    indent_unit: int = DEFAULT_INDENT_UNIT,
    metadata_keys: Iterable[str] = DEFAULT_METADATA_KEYS,
    classify: Callable[[str], NodeKind] = classify_label,
) -> UsbNode:
    """Parse enumeration output into a tree under a synthetic root.

    Raises:
        NoDevicesDetected: the text is empty or whitespace only.
        ParseFailed: no line produced a node.
    """
    if not raw_text or not raw_text.strip():
        raise NoDevicesDetected()

    entries = parse_lines(raw_text, source_format, indent_unit, metadata_keys, classify)
    if not entries:
        raise ParseFailed(raw_text, source_format.value)

    children = _build_children(entries)
    return UsbNode(name=ROOT_NAME, kind=NodeKind.HUB, depth=ROOT_DEPTH, children=children)


def fallback_tree(raw_text: str) -> UsbNode:
    """Tree holding the whole raw text as a single opaque leaf at 0 hops."""
    leaf = UsbNode(name=raw_text.strip(), kind=NodeKind.DEVICE, depth=0)
    return UsbNode(name=ROOT_NAME, kind=NodeKind.HUB, depth=ROOT_DEPTH, children=(leaf,))


def build_topology(
    raw_text: str,
    source_format: SourceFormat,
    indent_unit: int = DEFAULT_INDENT_UNIT,
    metadata_keys: Iterable[str] = DEFAULT_METADATA_KEYS,
    classify: Callable[[str], NodeKind] = classify_label,
) -> tuple[UsbNode, bool]:
    """Parse the text, degrading to fallback_tree when nothing parses.

    Returns the tree and whether the fallback was used. NoDevicesDetected
    still propagates.
    """
    try:
        return parse_topology(raw_text, source_format, indent_unit, metadata_keys, classify), False
    except ParseFailed as e:
        logger.warning(f"{e}; using raw data as a single entry")
        return fallback_tree(raw_text), True
