"""The shell — command interpreter for the file store.

The shell holds a single cursor, the *current directory*, and runs one
command line at a time against it.  Every command is a single word
followed by whitespace-separated arguments; names are single path
segments (no ``a/b/c``).

Design choices:
    - **Returns strings, not prints.**  This keeps the shell fully
      testable and lets the caller (REPL or web app) decide how to
      display output.
    - **Command dispatch via a dict.**  Adding a command means writing
      one method and adding one dict entry.
    - **Errors are answers, not exceptions.**  A failed command returns
      an ``Error: ...`` string and leaves the tree and cursor unchanged.
    - **The shell does not persist.**  ``exit`` returns
      ``EXIT_SENTINEL``; whoever drives the shell saves the snapshot.
"""

from collections.abc import Callable
from typing import TypeAlias

from memfs.fs.nodes import (
    DanglingLinkError,
    Directory,
    FileNode,
    QuotaExceededError,
    RegularFile,
    SoftLink,
    SymlinkLoopError,
    display,
    path_of,
    would_create_cycle,
)
from memfs.logging import Logger, LogLevel

# Type alias for a command handler: takes a list of args, returns output.
_Handler: TypeAlias = Callable[[list[str]], str]

_SOURCE = "shell"
_TWO_ARGS = 2


class Shell:
    """Command interpreter over one file tree.

    The shell remembers the true root (what gets saved on exit) and the
    current directory (where every name is looked up).
    """

    EXIT_SENTINEL = "__EXIT__"

    def __init__(self, root: Directory, *, logger: Logger | None = None) -> None:
        """Create a shell whose current directory starts at *root*.

        Args:
            root: The top of the tree, restored from a snapshot or fresh.
            logger: Where to record commands that change or fail.

        """
        self._root = root
        self._cwd = root
        self._logger = logger
        # (entered, came_from) for each cd that followed a link, so cd ..
        # can return even when the link target has no parent.
        self._link_trail: list[tuple[Directory, Directory]] = []

        # Command dispatch table — maps command names to handler methods.
        self._commands: dict[str, _Handler] = {
            "help": self._cmd_help,
            "ls": self._cmd_ls,
            "mkdir": self._cmd_mkdir,
            "touch": self._cmd_touch,
            "rm": self._cmd_rm,
            "cp": self._cmd_cp,
            "link": self._cmd_link,
            "cd": self._cmd_cd,
            "cat": self._cmd_cat,
            "pwd": self._cmd_pwd,
            "log": self._cmd_log,
            "exit": self._cmd_exit,
        }

    @property
    def root(self) -> Directory:
        """Return the true root of the tree."""
        return self._root

    @property
    def cwd(self) -> Directory:
        """Return the current directory."""
        return self._cwd

    @property
    def logger(self) -> Logger | None:
        """Return the logger, or None if logging is off."""
        return self._logger

    @property
    def command_names(self) -> list[str]:
        """Return the sorted names of all commands."""
        return sorted(self._commands)

    def execute(self, command: str) -> str:
        """Parse and execute one command line.

        Args:
            command: The raw line (e.g. ``"cp a.txt b.txt"``).

        Returns:
            The command output, an ``Error: ...`` message, ``""`` for
            silent success, or ``EXIT_SENTINEL`` for ``exit``.

        """
        parts = command.split()
        if not parts:
            return ""

        name, args = parts[0], parts[1:]
        handler = self._commands.get(name)
        if handler is None:
            return self._error(f"Unknown command: {name}")
        return handler(args)

    # -- helpers -------------------------------------------------------------

    def _log(self, level: LogLevel, message: str) -> None:
        if self._logger is not None:
            self._logger.log(level, message, source=_SOURCE)

    def _error(self, message: str) -> str:
        """Log a user error and return it as command output."""
        self._log(LogLevel.WARNING, message)
        return f"Error: {message}"

    def _add(self, node: FileNode) -> str:
        """Add *node* to the current directory, reporting quota refusals."""
        try:
            self._cwd.add_child(node)
        except QuotaExceededError as e:
            return self._error(str(e))
        self._log(LogLevel.INFO, f"Created {node.file_type} '{node.name}' in {path_of(self._cwd)}")
        return ""

    # -- commands ------------------------------------------------------------

    def _cmd_help(self, _args: list[str]) -> str:
        """List available commands."""
        return "Available commands: " + ", ".join(self.command_names)

    def _cmd_ls(self, _args: list[str]) -> str:
        """List the current directory in insertion order."""
        return " ".join(child.name for child in self._cwd.children)

    def _cmd_mkdir(self, args: list[str]) -> str:
        """Create an empty directory."""
        if not args:
            return "Usage: mkdir <name>"
        return self._add(Directory(args[0]))

    def _cmd_touch(self, args: list[str]) -> str:
        """Create an empty file."""
        if not args:
            return "Usage: touch <name>"
        return self._add(RegularFile(args[0]))

    def _cmd_rm(self, args: list[str]) -> str:
        """Remove the first entry with the given name."""
        if not args:
            return "Usage: rm <name>"
        removed = self._cwd.remove_child(args[0])
        if removed is None:
            return self._error(f"No such file or directory: {args[0]}")
        self._log(LogLevel.INFO, f"Removed {removed.file_type} '{removed.name}'")
        return ""

    def _cmd_cp(self, args: list[str]) -> str:
        """Copy a file's content into a new regular file.

        Copying through a link copies the target's bytes.  Directories
        (directly or through a link) cannot be copied.
        """
        if len(args) < _TWO_ARGS:
            return "Usage: cp <source> <destination>"
        source_name, dest_name = args[0], args[1]
        source = self._cwd.get_child(source_name)
        if source is None:
            return self._error(f"Source file not found: {source_name}")
        try:
            resolved = source.resolve() if isinstance(source, SoftLink) else source
        except (DanglingLinkError, SymlinkLoopError) as e:
            return self._error(str(e))
        if isinstance(resolved, Directory):
            return self._error("Copying directories is not supported")
        return self._add(RegularFile(dest_name, bytes(resolved.data)))

    def _cmd_link(self, args: list[str]) -> str:
        """Create a soft link to an entry of the current directory."""
        if len(args) < _TWO_ARGS:
            return "Usage: link <source> <destination>"
        source_name, dest_name = args[0], args[1]
        source = self._cwd.get_child(source_name)
        if source is None:
            return self._error(f"Source file not found: {source_name}")
        if would_create_cycle(source, self._cwd):
            return self._error(
                f"Cyclic link: '{source_name}' already leads back to {path_of(self._cwd)}"
            )
        link = SoftLink(dest_name, source)
        try:
            link.resolve()
        except SymlinkLoopError as e:
            return self._error(str(e))
        except DanglingLinkError:
            pass  # dangling chains are reported when they are used
        return self._add(link)

    def _cmd_cd(self, args: list[str]) -> str:
        """Change the current directory by one step.

        ``..`` moves to the parent, ``.`` stays put, and any other name
        must be a child directory or a link that resolves to one.  After
        entering through a link, ``..`` returns to the directory the
        link was followed from.
        """
        if not args:
            return "Usage: cd <name>"
        target = args[0]

        if target == ".":
            return ""

        if target == "..":
            if self._cwd is self._root:
                return self._error("Already at the root directory")
            if self._link_trail and self._link_trail[-1][0] is self._cwd:
                _entered, self._cwd = self._link_trail.pop()
                return ""
            parent = self._cwd.parent
            if parent is None:
                return self._error("Unable to determine parent directory")
            self._cwd = parent
            return ""

        node = self._cwd.get_child(target)
        try:
            resolved = node.resolve() if isinstance(node, SoftLink) else node
        except (DanglingLinkError, SymlinkLoopError):
            resolved = None
        if not isinstance(resolved, Directory):
            return self._error(f"Directory not found: {target}")
        if isinstance(node, SoftLink):
            self._link_trail.append((resolved, self._cwd))
        self._cwd = resolved
        return ""

    def _cmd_cat(self, args: list[str]) -> str:
        """Show a file's content, or a directory's listing."""
        if not args:
            return "Usage: cat <name>"
        node = self._cwd.get_child(args[0])
        if node is None:
            return self._error(f"File not found: {args[0]}")
        try:
            return display(node)
        except (DanglingLinkError, SymlinkLoopError) as e:
            return self._error(str(e))

    def _cmd_pwd(self, _args: list[str]) -> str:
        """Show the path of the current directory."""
        return path_of(self._cwd)

    def _cmd_log(self, args: list[str]) -> str:
        """Show recorded log entries, optionally only those at or above a level."""
        min_level: LogLevel | None = None
        if args:
            try:
                min_level = LogLevel[args[0].upper()]
            except KeyError:
                names = ", ".join(level.name.lower() for level in LogLevel)
                return f"Usage: log [{names}]"
        if self._logger is None:
            return "No log entries."
        entries = self._logger.filter(min_level=min_level)
        if not entries:
            return "No log entries."
        return "\n".join(str(entry) for entry in entries)

    def _cmd_exit(self, _args: list[str]) -> str:
        """Signal the driver to save the snapshot and stop."""
        self._log(LogLevel.INFO, "Session ending")
        return self.EXIT_SENTINEL
