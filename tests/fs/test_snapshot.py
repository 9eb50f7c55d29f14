"""Tests for binary snapshot persistence.

The whole tree is written as one pre-order stream of tagged nodes and
restored from it on the next start.  A missing or damaged snapshot must
never stop the store from starting: it falls back to an empty root.
"""

import io
import struct
from pathlib import Path

import pytest

from memfs.fs.nodes import (
    ROOT_NAME,
    CyclicLinkError,
    Directory,
    FileNode,
    RegularFile,
    SoftLink,
)
from memfs.fs.snapshot import (
    SnapshotError,
    decode_node,
    encode_node,
    load_snapshot,
    read_node,
    save_snapshot,
    write_node,
)
from memfs.logging import Logger, LogLevel
from memfs.shell import Shell


def _length(value: int) -> bytes:
    return struct.pack("<Q", value)


def _shape(node: FileNode) -> object:
    """Return a comparable description of a tree: names, kinds, bytes, order."""
    match node:
        case Directory():
            return ("D", node.name, [_shape(child) for child in node.children])
        case SoftLink():
            return ("L", node.name, _shape(node.target))
        case RegularFile():
            return ("R", node.name, node.data)


def _sample_tree() -> Directory:
    root = Directory(ROOT_NAME)
    docs = Directory("docs")
    notes = RegularFile("notes.txt", b"important")
    root.add_child(docs)
    root.add_child(RegularFile("a.txt"))
    docs.add_child(notes)
    docs.add_child(RegularFile("copy.txt", b"important"))
    docs.add_child(SoftLink("notes.lnk", notes))
    root.add_child(SoftLink("docs.lnk", docs))
    return root


class TestWireFormat:
    """Verify the exact byte layout."""

    def test_empty_file_layout(self) -> None:
        """A regular file is tag, name length, name, content length."""
        data = encode_node(RegularFile("a"))
        assert data == b"R" + _length(1) + b"a" + _length(0)

    def test_content_units_are_32_bit(self) -> None:
        """Each content byte is written as a little-endian 32-bit int."""
        data = encode_node(RegularFile("a", b"\x01\xff"))
        assert data.endswith(_length(2) + struct.pack("<2i", 1, 255))

    def test_directory_layout(self) -> None:
        """A directory is tag, name, child count, then its children."""
        d = Directory("d")
        d.add_child(RegularFile("x"))
        expected = b"D" + _length(1) + b"d" + _length(1) + encode_node(RegularFile("x"))
        assert encode_node(d) == expected

    def test_link_inlines_target(self) -> None:
        """A link is tag L, its name, then the whole target node."""
        target = RegularFile("t", b"z")
        data = encode_node(SoftLink("l", target))
        assert data == b"L" + _length(1) + b"l" + encode_node(target)

    def test_link_to_directory_tagged_as_link(self) -> None:
        """A link to a directory is still written with tag L."""
        data = encode_node(SoftLink("l", Directory("d")))
        assert data[:1] == b"L"

    def test_write_node_to_stream(self) -> None:
        """write_node should produce the same bytes as encode_node."""
        buffer = io.BytesIO()
        tree = _sample_tree()
        write_node(buffer, tree)
        assert buffer.getvalue() == encode_node(tree)


class TestRoundTrip:
    """Verify that trees survive encode/decode."""

    def test_empty_root(self) -> None:
        """An empty root should round-trip."""
        restored = decode_node(encode_node(Directory(ROOT_NAME)))
        assert isinstance(restored, Directory)
        assert restored.name == ROOT_NAME
        assert restored.children == ()

    def test_sample_tree(self) -> None:
        """Names, content, nesting and order should all be preserved."""
        tree = _sample_tree()
        restored = decode_node(encode_node(tree))
        assert _shape(restored) == _shape(tree)

    def test_binary_content(self) -> None:
        """Every byte value should survive."""
        f = RegularFile("bin", bytes(range(256)))
        restored = decode_node(encode_node(f))
        assert isinstance(restored, RegularFile)
        assert restored.data == bytes(range(256))

    def test_unicode_names(self) -> None:
        """Names are stored as UTF-8."""
        restored = decode_node(encode_node(RegularFile("résumé.txt")))
        assert restored.name == "résumé.txt"

    def test_restored_parents_are_wired(self) -> None:
        """Restored subdirectories should know their parent."""
        restored = decode_node(encode_node(_sample_tree()))
        assert isinstance(restored, Directory)
        docs = restored.get_child("docs")
        assert isinstance(docs, Directory)
        assert docs.parent is restored

    def test_restored_quota_accounting(self) -> None:
        """Restored directories recompute their aggregate size."""
        tree = _sample_tree()
        docs = tree.get_child("docs")
        restored = decode_node(encode_node(tree))
        assert isinstance(restored, Directory)
        restored_docs = restored.get_child("docs")
        assert isinstance(docs, Directory)
        assert isinstance(restored_docs, Directory)
        assert restored_docs.aggregate_size == docs.aggregate_size

    def test_read_node_from_stream(self) -> None:
        """read_node should decode from a binary stream."""
        stream = io.BytesIO(encode_node(_sample_tree()))
        assert _shape(read_node(stream)) == _shape(_sample_tree())


class TestLinksInSnapshot:
    """Verify how links are stored by value."""

    def test_dangling_links_are_skipped(self) -> None:
        """A dangling link is left out of its directory's children."""
        root = Directory(ROOT_NAME)
        f = RegularFile("a.txt")
        root.add_child(f)
        root.add_child(SoftLink("l", f))
        root.remove_child("a.txt")
        logger = Logger()

        restored = decode_node(encode_node(root, logger=logger))

        assert isinstance(restored, Directory)
        assert restored.children == ()
        assert any("dangling" in e.message for e in logger.filter(min_level=LogLevel.WARNING))

    def test_cycle_is_reported_not_followed(self) -> None:
        """A link back into an ancestor raises instead of recursing forever."""
        root = Directory(ROOT_NAME)
        sub = Directory("sub")
        root.add_child(sub)
        sub.add_child(SoftLink("up", root))
        with pytest.raises(CyclicLinkError):
            encode_node(root)

    def test_link_to_same_directory_twice_is_not_a_cycle(self) -> None:
        """Two links to one directory are duplicated, not a cycle."""
        root = Directory(ROOT_NAME)
        d = Directory("d")
        root.add_child(d)
        root.add_child(SoftLink("l1", d))
        root.add_child(SoftLink("l2", d))
        restored = decode_node(encode_node(root))
        assert isinstance(restored, Directory)
        assert [c.name for c in restored.children] == ["d", "l1", "l2"]


class TestMalformed:
    """Verify that bad input raises SnapshotError."""

    def test_unknown_tag(self) -> None:
        """An unknown tag is rejected."""
        with pytest.raises(SnapshotError, match="Unknown node tag"):
            decode_node(b"X" + _length(1) + b"a")

    def test_empty_input(self) -> None:
        """Zero bytes is a truncated snapshot."""
        with pytest.raises(SnapshotError, match="Truncated"):
            decode_node(b"")

    def test_truncated_content(self) -> None:
        """Missing content bytes are detected."""
        data = encode_node(RegularFile("a", b"hello"))
        with pytest.raises(SnapshotError, match="Truncated"):
            decode_node(data[:-3])

    def test_huge_length_is_truncation(self) -> None:
        """A length larger than the remaining data is rejected early."""
        with pytest.raises(SnapshotError, match="Truncated"):
            decode_node(b"R" + _length(2**40))

    def test_trailing_data(self) -> None:
        """Bytes after the top-level node are rejected."""
        with pytest.raises(SnapshotError, match="Trailing"):
            decode_node(encode_node(RegularFile("a")) + b"junk")

    def test_content_out_of_byte_range(self) -> None:
        """Content units must be byte values."""
        data = b"R" + _length(1) + b"a" + _length(1) + struct.pack("<i", 300)
        with pytest.raises(SnapshotError, match=r"0\.\.255"):
            decode_node(data)

    def test_invalid_utf8_name(self) -> None:
        """Names must decode as UTF-8."""
        with pytest.raises(SnapshotError, match="Invalid node name"):
            decode_node(b"R" + _length(1) + b"\xff" + _length(0))


class TestSnapshotFiles:
    """Verify saving to and loading from disk."""

    def test_save_then_load(self, tmp_path: Path) -> None:
        """A saved tree should load back identically."""
        path = tmp_path / "state.bin"
        save_snapshot(_sample_tree(), path)
        restored = load_snapshot(path)
        assert _shape(restored) == _shape(_sample_tree())

    def test_save_truncates_previous(self, tmp_path: Path) -> None:
        """Saving replaces any prior content."""
        path = tmp_path / "state.bin"
        path.write_bytes(b"x" * 1000)
        save_snapshot(Directory(ROOT_NAME), path)
        assert path.read_bytes() == encode_node(Directory(ROOT_NAME))

    def test_failed_encode_keeps_previous_file(self, tmp_path: Path) -> None:
        """A cyclic tree leaves the existing snapshot untouched."""
        path = tmp_path / "state.bin"
        path.write_bytes(b"previous")
        root = Directory(ROOT_NAME)
        sub = Directory("sub")
        root.add_child(sub)
        sub.add_child(SoftLink("up", root))
        with pytest.raises(CyclicLinkError):
            save_snapshot(root, path)
        assert path.read_bytes() == b"previous"

    def test_save_logs(self, tmp_path: Path) -> None:
        """Saving is recorded at INFO."""
        logger = Logger()
        save_snapshot(Directory(ROOT_NAME), tmp_path / "s.bin", logger=logger)
        assert any("Saved snapshot" in e.message for e in logger.entries)

    def test_missing_file_gives_fresh_root(self, tmp_path: Path) -> None:
        """No snapshot means a new empty root, with a warning."""
        logger = Logger()
        root = load_snapshot(tmp_path / "missing.bin", logger=logger)
        assert root.name == ROOT_NAME
        assert root.children == ()
        assert logger.filter(min_level=LogLevel.WARNING)

    def test_garbage_gives_fresh_root(self, tmp_path: Path) -> None:
        """A malformed snapshot is replaced by a fresh root, with an error."""
        path = tmp_path / "bad.bin"
        path.write_bytes(b"\x00garbage")
        logger = Logger()
        root = load_snapshot(path, logger=logger)
        assert root.name == ROOT_NAME
        assert root.children == ()
        assert logger.filter(min_level=LogLevel.ERROR)

    def test_non_directory_top_gives_fresh_root(self, tmp_path: Path) -> None:
        """A snapshot whose top node is a file is invalid."""
        path = tmp_path / "file.bin"
        path.write_bytes(encode_node(RegularFile("a")))
        root = load_snapshot(path)
        assert isinstance(root, Directory)
        assert root.children == ()

    def test_unreadable_path_gives_fresh_root(self, tmp_path: Path) -> None:
        """A path that cannot be read as a file falls back too."""
        root = load_snapshot(tmp_path)
        assert root.name == ROOT_NAME


class TestShellBuiltTrees:
    """Verify round-trips of trees built only through shell commands."""

    def test_commands_round_trip(self, tmp_path: Path) -> None:
        """mkdir/touch/cp/link trees restore observably identical."""
        shell = Shell(Directory(ROOT_NAME))
        shell.root.add_child(RegularFile("seed", b"seed bytes"))
        for line in (
            "mkdir docs",
            "touch a.txt",
            "cp seed b.txt",
            "link seed seed.lnk",
            "link docs docs.lnk",
            "cd docs",
            "mkdir src",
            "touch readme",
            "link readme readme.lnk",
            "cd src",
            "touch main",
        ):
            assert shell.execute(line) == ""
        path = tmp_path / "state.bin"
        save_snapshot(shell.root, path)

        restored = Shell(load_snapshot(path))

        assert _shape(restored.root) == _shape(shell.root)
        assert restored.execute("cat seed.lnk") == "seed bytes"
        assert restored.execute("cat b.txt") == "seed bytes"
        assert restored.execute("cd docs") == ""
        assert restored.execute("ls") == "src readme readme.lnk"


class TestDeepTrees:
    """Verify that nesting depth is not bounded by the interpreter stack."""

    DEPTH = 1100

    def test_deep_shell_tree_saves_and_loads(self, tmp_path: Path) -> None:
        """A tree built by many mkdir/cd steps round-trips through a file."""
        shell = Shell(Directory(ROOT_NAME))
        for depth in range(self.DEPTH):
            shell.execute(f"mkdir d{depth}")
            shell.execute(f"cd d{depth}")
        shell.execute("touch leaf")
        path = tmp_path / "state.bin"

        save_snapshot(shell.root, path)
        restored = load_snapshot(path)

        current: FileNode | None = restored
        for depth in range(self.DEPTH):
            assert isinstance(current, Directory)
            current = current.get_child(f"d{depth}")
        assert isinstance(current, Directory)
        assert [c.name for c in current.children] == ["leaf"]
        assert current.parent is not None

    def test_deeply_nested_bytes_decode(self) -> None:
        """Hand-written deep nesting decodes instead of being rejected."""
        depth = 5000
        data = b"".join(b"D" + _length(1) + b"d" + _length(1) for _ in range(depth))
        data += encode_node(RegularFile("leaf"))
        node = decode_node(data)
        for _ in range(depth):
            assert isinstance(node, Directory)
            (node,) = node.children
        assert isinstance(node, RegularFile)

    def test_long_link_chain_round_trips(self) -> None:
        """Links to links are written and read back without recursion."""
        node: FileNode = RegularFile("a", b"x")
        for index in range(self.DEPTH):
            node = SoftLink(f"l{index}", node)
        restored = decode_node(encode_node(node))
        for _ in range(self.DEPTH):
            assert isinstance(restored, SoftLink)
            restored = restored.target
        assert isinstance(restored, RegularFile)
        assert restored.data == b"x"
