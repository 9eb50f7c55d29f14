"""Context-aware tab completer for the memfs shell.

The completer separates **what to complete** (pure logic, fully
testable) from **how to wire it** (readline integration in the REPL).

The ``complete(text, state)`` method is the readline callback.  It
delegates to ``completions(text, line)`` which looks at the words typed
so far and returns a list of candidate strings.
"""

from __future__ import annotations

import readline
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from memfs.shell import Shell

# Commands whose arguments name entries of the current directory.
_NAME_COMMANDS: frozenset[str] = frozenset(["rm", "cp", "link", "cat", "cd"])


class Completer:
    """Context-aware tab completer for the memfs shell."""

    def __init__(self, shell: Shell) -> None:
        """Create a completer attached to a shell instance.

        Args:
            shell: The shell whose commands and current directory are
                   used to generate completion candidates.

        """
        self._shell = shell

    def complete(self, text: str, state: int) -> str | None:
        """Readline callback — return the *state*-th candidate for *text*.

        Args:
            text: The partial word being completed.
            state: Index into the candidate list (0, 1, 2, …).

        Returns:
            The candidate at *state*, or ``None`` when exhausted.

        """
        line = readline.get_line_buffer()
        candidates = self.completions(text, line)
        if state < len(candidates):
            return candidates[state]
        return None

    def completions(self, text: str, line: str) -> list[str]:
        """Return completion candidates based on context.

        Args:
            text: The partial word under the cursor.
            line: The full input line so far.

        Returns:
            Sorted list of matching candidates.

        """
        words = line.lstrip().split()

        # No words yet, or still typing the first word → command completion
        if not words or (len(words) == 1 and not line.endswith(" ")):
            return [cmd for cmd in self._shell.command_names if cmd.startswith(text)]

        if words[0] not in _NAME_COMMANDS:
            return []
        return self._complete_names(words[0], text)

    def _complete_names(self, cmd: str, text: str) -> list[str]:
        """Complete entry names of the current directory.

        ``cd`` is offered only directories (and links to them), plus
        ``..`` and ``.``.
        """
        entries = self._shell.cwd.children
        if cmd == "cd":
            names = [child.name for child in entries if child.is_directory]
            names.extend([".", ".."])
        else:
            names = [child.name for child in entries]
        return sorted({name for name in names if name.startswith(text)})
