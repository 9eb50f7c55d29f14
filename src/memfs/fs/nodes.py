"""File tree model: regular files, directories, and soft links.

Three node variants share one capability contract (name, content bytes,
size, directory-ness) but only ``Directory`` owns children:

- **RegularFile** — a name and immutable content bytes.
- **Directory** — an ordered list of owned children, a weak back-reference
  to its parent, and a cached aggregate size checked against a quota.
- **SoftLink** — a name and a reference to another node.  Content and
  directory-ness are delegated to the target; the link owns nothing.

Ownership:
    A directory exclusively owns its children.  Removing a child
    *releases* it: every node in the removed subtree is flagged as
    released and its child lists are dropped.  Soft links never release
    their target, and reading through a link whose target was released
    raises ``DanglingLinkError`` instead of touching a dead node.

Quota:
    A directory's aggregate size is the sum of its direct children's
    content lengths.  Directories report empty content, so nested
    directories cost nothing against their parent's quota.
"""

from __future__ import annotations

import weakref
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import StrEnum
from typing import ClassVar, TypeAlias


class FileType(StrEnum):
    """The kind of node."""

    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"


QUOTA_BYTES = 10 * 1024 * 1024
"""Upper bound on the aggregate size of one directory."""

ROOT_NAME = "root"
"""Name that marks a directory as the navigation ceiling."""

MAX_SYMLINK_DEPTH = 40
"""Maximum soft link chain length followed by ``SoftLink.resolve``."""


class QuotaExceededError(OSError):
    """Adding a child would push a directory past its quota."""


class DanglingLinkError(FileNotFoundError):
    """A soft link's target has been removed from the tree."""


class CyclicLinkError(OSError):
    """A soft link would make the tree reachable from itself."""


class SymlinkLoopError(OSError):
    """A soft link chain is longer than ``MAX_SYMLINK_DEPTH``."""


@dataclass(eq=False)
class RegularFile:
    """A leaf node holding immutable content bytes."""

    file_type: ClassVar[FileType] = FileType.FILE

    name: str
    data: bytes = b""
    released: bool = field(default=False, init=False, repr=False)

    @property
    def size(self) -> int:
        """Return the content length in bytes."""
        return len(self.data)

    @property
    def is_directory(self) -> bool:
        """Regular files are never directories."""
        return False

    @property
    def is_symlink(self) -> bool:
        """Regular files are never links."""
        return False

    def get_file(self, name: str) -> RegularFile | None:
        """Return this file if *name* is its own name."""
        return self if name == self.name else None

    def release(self) -> None:
        """Mark this file as removed from the tree."""
        self.released = True


class Directory:
    """A node that owns an ordered list of children.

    Children are kept in insertion order, which is both the display
    order of ``ls`` and the order the snapshot codec walks them.  Each
    child is stored together with the size it was charged when added,
    so removal gives back exactly what was taken even if a link's
    target has since been released.
    """

    file_type: ClassVar[FileType] = FileType.DIRECTORY

    def __init__(self, name: str) -> None:
        """Create an empty directory with no parent."""
        self.name = name
        self.released = False
        self._entries: list[tuple[FileNode, int]] = []
        self._aggregate_size = 0
        self._parent: weakref.ref[Directory] | None = None

    def __repr__(self) -> str:
        """Show the name and child count."""
        return f"Directory(name={self.name!r}, children={len(self._entries)})"

    @property
    def data(self) -> bytes:
        """Directories have no content of their own."""
        return b""

    @property
    def size(self) -> int:
        """Always 0, see ``data``."""
        return 0

    @property
    def is_directory(self) -> bool:
        """Directories are directories."""
        return True

    @property
    def is_symlink(self) -> bool:
        """Directories are never links."""
        return False

    @property
    def aggregate_size(self) -> int:
        """Return the bytes charged by the direct children."""
        return self._aggregate_size

    @property
    def children(self) -> tuple[FileNode, ...]:
        """Return the children in insertion order."""
        return tuple(child for child, _charged in self._entries)

    @property
    def parent(self) -> Directory | None:
        """Return the parent directory, or None at a navigation ceiling.

        A directory named ``root`` never reports a parent, whatever its
        stored back-reference says.  The parent is held weakly, so a
        directory whose parent has been discarded also reports None.
        """
        if self.name == ROOT_NAME or self._parent is None:
            return None
        return self._parent()

    def get_child(self, name: str) -> FileNode | None:
        """Return the first child called *name*, or None."""
        for child, _charged in self._entries:
            if child.name == name:
                return child
        return None

    def get_file(self, name: str) -> FileNode | None:
        """Alias of ``get_child`` so every variant answers ``get_file``."""
        return self.get_child(name)

    def add_child(self, node: FileNode) -> None:
        """Append *node*, charging its content length against the quota.

        Raises:
            QuotaExceededError: If the charge would exceed ``QUOTA_BYTES``.
                The directory is left unchanged.

        """
        charge = node.size
        if self._aggregate_size + charge > QUOTA_BYTES:
            free = QUOTA_BYTES - self._aggregate_size
            msg = f"Disk space limit exceeded: {node.name} needs {charge} bytes, {free} free"
            raise QuotaExceededError(msg)
        self._entries.append((node, charge))
        self._aggregate_size += charge
        if isinstance(node, Directory):
            node._parent = weakref.ref(self)

    def remove_child(self, name: str) -> FileNode | None:
        """Remove and release the first child called *name*.

        Returns:
            The removed node, or None if no child matched.

        """
        for index, (child, charged) in enumerate(self._entries):
            if child.name == name:
                del self._entries[index]
                self._aggregate_size -= charged
                child.release()
                return child
        return None

    def release(self) -> None:
        """Release this directory and everything it owns.

        Walks the subtree with an explicit stack, so arbitrarily deep
        trees can be removed.
        """
        pending: list[FileNode] = [self]
        while pending:
            node = pending.pop()
            if isinstance(node, Directory):
                pending.extend(child for child, _charged in node._entries)
                node._entries.clear()
                node._aggregate_size = 0
                node._parent = None
            node.released = True


class SoftLink:
    """A named reference to another node.

    The link keeps its target reachable but does not own it: removing
    the link leaves the target alone, and removing the target leaves
    the link dangling.  Content queries on a dangling link report an
    empty, non-directory node.
    """

    file_type: ClassVar[FileType] = FileType.SYMLINK

    def __init__(self, name: str, target: FileNode) -> None:
        """Create a link called *name* pointing at *target*."""
        self.name = name
        self.released = False
        self._target = target

    def __repr__(self) -> str:
        """Show the link name and its target's name."""
        return f"SoftLink(name={self.name!r}, target={self._target.name!r})"

    @property
    def dangling(self) -> bool:
        """Return True if the target has been removed from the tree."""
        return self._target.released

    @property
    def target(self) -> FileNode:
        """Return the node this link points at.

        Raises:
            DanglingLinkError: If the target has been released.

        """
        if self._target.released:
            msg = f"Dangling link: {self.name}"
            raise DanglingLinkError(msg)
        return self._target

    def resolve(self) -> RegularFile | Directory:
        """Follow the link chain to the first node that is not a link.

        Raises:
            DanglingLinkError: If any link along the chain is dangling.
            SymlinkLoopError: If the chain is longer than ``MAX_SYMLINK_DEPTH``.

        """
        node: FileNode = self
        for _ in range(MAX_SYMLINK_DEPTH):
            if not isinstance(node, SoftLink):
                return node
            node = node.target
        msg = f"Too many levels of symbolic links: {self.name}"
        raise SymlinkLoopError(msg)

    @property
    def data(self) -> bytes:
        """Return the target's content, or empty bytes when unresolvable."""
        try:
            return self.resolve().data
        except (DanglingLinkError, SymlinkLoopError):
            return b""

    @property
    def size(self) -> int:
        """Return the target's content length."""
        return len(self.data)

    @property
    def is_directory(self) -> bool:
        """Return True if the link resolves to a directory."""
        try:
            return self.resolve().is_directory
        except (DanglingLinkError, SymlinkLoopError):
            return False

    @property
    def is_symlink(self) -> bool:
        """Links are links."""
        return True

    def get_file(self, name: str) -> SoftLink | None:
        """Return this link if *name* is its own name."""
        return self if name == self.name else None

    def release(self) -> None:
        """Mark this link as removed.  The target is not touched."""
        self.released = True


FileNode: TypeAlias = RegularFile | Directory | SoftLink


def iter_reachable(node: FileNode) -> Iterator[FileNode]:
    """Yield every live node reachable from *node*.

    Walks owned children and soft link targets, visiting each node
    once.  Dangling links are yielded but not followed.
    """
    seen: set[int] = set()
    stack: list[FileNode] = [node]
    while stack:
        current = stack.pop()
        if id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        if isinstance(current, Directory):
            stack.extend(reversed(current.children))
        elif isinstance(current, SoftLink) and not current.dangling:
            stack.append(current.target)


def would_create_cycle(target: FileNode, destination: Directory) -> bool:
    """Return True if linking *target* into *destination* forms a cycle.

    Serialization inlines link targets, so a link is only safe when its
    destination cannot be reached again from the target.
    """
    return any(node is destination for node in iter_reachable(target))


def display(node: FileNode) -> str:
    """Return what ``cat`` prints for *node*.

    Raises:
        DanglingLinkError: If *node* is a link whose target is gone.
        SymlinkLoopError: If *node* starts an overlong link chain.

    """
    match node:
        case Directory():
            return " ".join(child.name for child in node.children)
        case SoftLink():
            return display(node.resolve())
        case RegularFile():
            return node.data.decode(errors="replace")


def path_of(directory: Directory) -> str:
    """Return the ``/``-separated path of *directory* from its top ancestor.

    The ``root`` directory itself is shown as ``/``.  A directory that is
    not attached under ``root`` (for example a restored link target) is
    shown relative to its own top ancestor.
    """
    names: list[str] = []
    current: Directory | None = directory
    while current is not None and current.name != ROOT_NAME:
        names.append(current.name)
        current = current.parent
    prefix = "/" if current is not None else ""
    return prefix + "/".join(reversed(names))
