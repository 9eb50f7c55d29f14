"""Interactive REPL (Read-Eval-Print Loop) for the file store.

The REPL is the thin I/O wrapper around the shell:

    1. **Load** — restore the tree from the snapshot (or start fresh).
    2. **Read** — display a prompt and read one line.
    3. **Eval** — pass the line to ``shell.execute()``.
    4. **Print** — display the result and the session timestamp.
    5. **Save** — on ``exit``, Ctrl+D or Ctrl+C, write the snapshot once.

The session start time is captured once, in ``Session``, and passed
around explicitly.  The helper functions are pure and testable; ``run()``
is the I/O entrypoint.
"""

import readline
import sys
from dataclasses import dataclass, field
from datetime import datetime

from memfs.completer import Completer
from memfs.config import Config, ConfigError, load_config
from memfs.fs.nodes import CyclicLinkError, Directory, path_of
from memfs.fs.snapshot import load_snapshot, save_snapshot
from memfs.logging import Logger, LogLevel
from memfs.shell import Shell

_BANNER_WIDTH = 38
_SOURCE = "repl"


@dataclass(frozen=True)
class Session:
    """Facts about one interactive session, fixed at startup."""

    config: Config
    started_at: datetime = field(default_factory=datetime.now)


def format_timestamp(started_at: datetime) -> str:
    """Return the session timestamp in ``ctime`` form.

    Example: ``Mon Oct 19 17:41:00 2026``.
    """
    return started_at.ctime()


def format_banner(messages: list[str]) -> str:
    """Format startup messages into a displayable banner string.

    Args:
        messages: Lines to show under the title, e.g. the load log.

    Returns:
        A formatted string suitable for printing to the console.

    """
    border = "=" * _BANNER_WIDTH
    header = f"\n  {border}\n                 memfs\n      An in-memory file store\n  {border}\n\n"
    body = "\n".join(f"  {msg}" for msg in messages)
    footer = "\nType 'help' for commands, 'exit' to save and quit.\n"
    return header + body + footer


def build_prompt(shell: Shell) -> str:
    """Build the prompt string showing the current directory.

    Returns:
        A prompt like ``/ > `` or ``/docs > ``.

    """
    return f"{path_of(shell.cwd)} > "


def save_session(root: Directory, session: Session, logger: Logger) -> str:
    """Save the tree and return a line describing the outcome.

    Failures are logged and reported, never raised.
    """
    path = session.config.snapshot_path
    try:
        save_snapshot(root, path, logger=logger)
    except (OSError, CyclicLinkError) as e:
        logger.log(LogLevel.ERROR, f"Unable to save snapshot: {e}", source=_SOURCE)
        return f"Error: Unable to save snapshot to {path}: {e}"
    return f"Saved to {path}."


def run(config: Config | None = None) -> None:
    """Load the snapshot and run the interactive REPL.

    This is the ``memfs`` console entry point.  It handles:
    - Configuration and snapshot loading.
    - Shell creation and tab completion.
    - The read-eval-print loop.
    - Saving on ``exit``, Ctrl+D and Ctrl+C.
    """
    if config is None:
        try:
            config = load_config()
        except ConfigError as e:
            print(f"Error: {e}", file=sys.stderr)  # noqa: T201
            raise SystemExit(2) from e

    session = Session(config=config)
    logger = Logger(min_level=config.log_level)
    root = load_snapshot(config.snapshot_path, logger=logger)
    shell = Shell(root, logger=logger)

    # Wire up tab completion via readline.
    completer = Completer(shell)
    readline.set_completer(completer.complete)
    readline.set_completer_delims(" \t")
    readline.parse_and_bind("tab: complete")

    print(format_banner([str(entry) for entry in logger.entries]))  # noqa: T201
    timestamp = format_timestamp(session.started_at)

    try:
        while True:
            try:
                command = input(build_prompt(shell))
            except EOFError:
                # Ctrl+D — save and exit
                print()  # noqa: T201
                break

            result = shell.execute(command)
            if result == Shell.EXIT_SENTINEL:
                break
            if result:
                print(result)  # noqa: T201
            print(timestamp)  # noqa: T201

    except KeyboardInterrupt:
        print("\nInterrupted.")  # noqa: T201

    print(save_session(shell.root, session, logger))  # noqa: T201
