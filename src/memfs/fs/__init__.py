"""File tree subsystem — nodes, quotas, soft links, and snapshots.

Re-exports public symbols so callers can write::

    from memfs.fs import Directory, load_snapshot
"""

from memfs.fs.nodes import (
    MAX_SYMLINK_DEPTH,
    QUOTA_BYTES,
    ROOT_NAME,
    CyclicLinkError,
    DanglingLinkError,
    Directory,
    FileNode,
    FileType,
    QuotaExceededError,
    RegularFile,
    SoftLink,
    SymlinkLoopError,
    display,
    iter_reachable,
    path_of,
    would_create_cycle,
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

__all__ = [
    "MAX_SYMLINK_DEPTH",
    "QUOTA_BYTES",
    "ROOT_NAME",
    "CyclicLinkError",
    "DanglingLinkError",
    "Directory",
    "FileNode",
    "FileType",
    "QuotaExceededError",
    "RegularFile",
    "SnapshotError",
    "SoftLink",
    "SymlinkLoopError",
    "decode_node",
    "display",
    "encode_node",
    "iter_reachable",
    "load_snapshot",
    "path_of",
    "read_node",
    "save_snapshot",
    "would_create_cycle",
    "write_node",
]
