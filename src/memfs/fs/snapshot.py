"""Snapshot persistence — save and restore the whole tree as binary.

The tree is written as one pre-order stream with no header, version or
checksum.  Each node is:

    tag      1 byte      b"D" directory, b"L" soft link, b"R" regular file
    name     <Q + bytes  UTF-8 name prefixed by its length
    payload  by tag:
        R    <Q + <i*n   content length, then each byte as a 32-bit int
        D    <Q + nodes  child count, then each child in listing order
        L    node        the link target, serialized inline by value

Integers are little-endian; lengths are 64-bit unsigned.

Because links are stored by value, a link to a directory duplicates the
whole subtree in the snapshot and restores as a link to a detached copy.
Dangling links are left out of the snapshot.

``load_snapshot`` never fails: a missing, unreadable or malformed file
yields a fresh empty ``root`` directory, and the reason is logged.
"""

from __future__ import annotations

import io
import struct
from dataclasses import dataclass
from typing import TYPE_CHECKING, BinaryIO

from memfs.fs.nodes import (
    ROOT_NAME,
    CyclicLinkError,
    DanglingLinkError,
    Directory,
    FileNode,
    QuotaExceededError,
    RegularFile,
    SoftLink,
)
from memfs.logging import Logger, LogLevel

if TYPE_CHECKING:
    from pathlib import Path

TAG_DIRECTORY = b"D"
TAG_LINK = b"L"
TAG_FILE = b"R"

_LENGTH = struct.Struct("<Q")
_UNIT_SIZE = struct.calcsize("<i")

_SOURCE = "snapshot"


class SnapshotError(ValueError):
    """A snapshot stream could not be decoded."""


def _is_dangling(node: FileNode) -> bool:
    """Return True if *node* is a link whose chain ends at a removed node."""
    try:
        while isinstance(node, SoftLink):
            node = node.target
    except DanglingLinkError:
        return True
    return False


def _tag_for(node: FileNode) -> bytes:
    match node:
        case SoftLink():
            return TAG_LINK
        case Directory():
            return TAG_DIRECTORY
        case RegularFile():
            return TAG_FILE


def _live_children(directory: Directory, logger: Logger | None) -> list[FileNode]:
    """Return the children worth writing, logging the dangling ones."""
    children: list[FileNode] = []
    for child in directory.children:
        if not _is_dangling(child):
            children.append(child)
        elif logger is not None:
            logger.log(
                LogLevel.WARNING,
                f"Skipping dangling link '{child.name}' in '{directory.name}'",
                source=_SOURCE,
            )
    return children


def write_node(stream: BinaryIO, node: FileNode, *, logger: Logger | None = None) -> None:
    """Serialize *node* and everything below it to *stream*.

    The tree is walked with an explicit stack rather than recursion, so
    nesting depth is limited only by memory.

    Raises:
        CyclicLinkError: If links lead back into a directory being written.

    """
    # Directories whose children are still being written; meeting one
    # again means a link led back into its own ancestor.
    active: set[int] = set()
    # (node, leaving): leaving entries close a directory after its children.
    stack: list[tuple[FileNode, bool]] = [(node, False)]
    while stack:
        current, leaving = stack.pop()
        if leaving:
            active.discard(id(current))
            continue

        stream.write(_tag_for(current))
        name = current.name.encode()
        stream.write(_LENGTH.pack(len(name)))
        stream.write(name)

        match current:
            case RegularFile():
                stream.write(_LENGTH.pack(len(current.data)))
                stream.write(struct.pack(f"<{len(current.data)}i", *current.data))
            case SoftLink():
                stack.append((current.target, False))
            case Directory():
                if id(current) in active:
                    msg = f"Cyclic link: directory '{current.name}' contains a link back to itself"
                    raise CyclicLinkError(msg)
                active.add(id(current))
                children = _live_children(current, logger)
                stream.write(_LENGTH.pack(len(children)))
                stack.append((current, True))
                stack.extend((child, False) for child in reversed(children))


def encode_node(node: FileNode, *, logger: Logger | None = None) -> bytes:
    """Serialize *node* and return the snapshot bytes."""
    buffer = io.BytesIO()
    write_node(buffer, node, logger=logger)
    return buffer.getvalue()


class _Reader:
    """Bounds-checked cursor over a snapshot buffer."""

    def __init__(self, data: bytes) -> None:
        self._data = memoryview(data)
        self._offset = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._offset

    def take(self, count: int) -> bytes:
        if count > self.remaining:
            msg = (
                f"Truncated snapshot: wanted {count} bytes at offset {self._offset}, "
                f"{self.remaining} left"
            )
            raise SnapshotError(msg)
        chunk = self._data[self._offset : self._offset + count].tobytes()
        self._offset += count
        return chunk

    def length(self) -> int:
        (value,) = _LENGTH.unpack(self.take(_LENGTH.size))
        return value

    @property
    def offset(self) -> int:
        return self._offset


@dataclass
class _Pending:
    """A link waiting for its target, or a directory waiting for children."""

    name: str
    directory: Directory | None = None
    remaining: int = 0


def _read_content(reader: _Reader, name: str) -> bytes:
    count = reader.length()
    units = struct.unpack(f"<{count}i", reader.take(count * _UNIT_SIZE))
    try:
        return bytes(units)
    except ValueError as e:
        msg = f"Content of '{name}' holds a value outside 0..255"
        raise SnapshotError(msg) from e


def _attach(pending: list[_Pending], node: FileNode) -> FileNode | None:
    """Hand a finished *node* to whatever is waiting for it.

    Completed links and directories are finished in turn.  Returns the
    top-level node once nothing is waiting any more, otherwise None.
    """
    while pending:
        waiting = pending[-1]
        if waiting.directory is None:
            pending.pop()
            node = SoftLink(waiting.name, node)
            continue
        try:
            waiting.directory.add_child(node)
        except QuotaExceededError as e:
            msg = f"Directory '{waiting.name}' exceeds its quota: {e}"
            raise SnapshotError(msg) from e
        waiting.remaining -= 1
        if waiting.remaining:
            return None
        pending.pop()
        node = waiting.directory
    return node


def _read_tree(reader: _Reader) -> FileNode:
    pending: list[_Pending] = []
    while True:
        start = reader.offset
        tag = reader.take(1)
        try:
            name = reader.take(reader.length()).decode()
        except UnicodeDecodeError as e:
            msg = f"Invalid node name at offset {start}"
            raise SnapshotError(msg) from e

        match tag:
            case b"R":
                node: FileNode = RegularFile(name, _read_content(reader, name))
            case b"L":
                pending.append(_Pending(name))
                continue
            case b"D":
                count = reader.length()
                node = Directory(name)
                if count:
                    pending.append(_Pending(name, node, count))
                    continue
            case _:
                msg = f"Unknown node tag {tag!r} at offset {start}"
                raise SnapshotError(msg)

        top = _attach(pending, node)
        if top is not None:
            return top


def decode_node(data: bytes) -> FileNode:
    """Rebuild one node (and its subtree) from snapshot bytes.

    Raises:
        SnapshotError: If the bytes are truncated, carry an unknown tag,
            or contain anything after the top-level node.

    """
    reader = _Reader(data)
    node = _read_tree(reader)
    if reader.remaining:
        msg = f"Trailing data after snapshot: {reader.remaining} bytes"
        raise SnapshotError(msg)
    return node


def read_node(stream: BinaryIO) -> FileNode:
    """Read *stream* to the end and decode it with ``decode_node``."""
    return decode_node(stream.read())


def save_snapshot(root: Directory, path: Path, *, logger: Logger | None = None) -> None:
    """Write the tree under *root* to *path*, replacing any prior content.

    The snapshot is encoded fully before the file is opened, so a failed
    encode leaves the previous snapshot intact.

    Raises:
        CyclicLinkError: If the tree contains a link cycle.
        OSError: If the file cannot be written.

    """
    payload = encode_node(root, logger=logger)
    path.write_bytes(payload)
    if logger is not None:
        logger.log(
            LogLevel.INFO,
            f"Saved snapshot to {path} ({len(payload)} bytes)",
            source=_SOURCE,
        )


def load_snapshot(path: Path, *, logger: Logger | None = None) -> Directory:
    """Restore the tree saved at *path*, or a fresh root if that fails."""

    def fresh(level: LogLevel, reason: str) -> Directory:
        if logger is not None:
            logger.log(level, f"{reason}; creating a new file system", source=_SOURCE)
        return Directory(ROOT_NAME)

    try:
        payload = path.read_bytes()
    except FileNotFoundError:
        return fresh(LogLevel.WARNING, f"No snapshot at {path}")
    except OSError as e:
        return fresh(LogLevel.ERROR, f"Unable to read snapshot {path}: {e}")

    try:
        node = decode_node(payload)
    except SnapshotError as e:
        return fresh(LogLevel.ERROR, f"Malformed snapshot {path}: {e}")

    if not isinstance(node, Directory):
        return fresh(LogLevel.ERROR, f"Invalid file system structure in {path}")

    if logger is not None:
        logger.log(LogLevel.INFO, f"Loaded snapshot from {path}", source=_SOURCE)
    return node
