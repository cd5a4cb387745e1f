# src/runstream/runner/router.py

"""
Decides which channel human-oriented text goes to.
"""

import sys
from typing import TextIO

INDENT = "    "


class VerboseRouter:
    """
    Routes human log detail away from the primary channel when it carries
    structured records.

    - verbose off: ``detail`` is dropped.
    - verbose on, structured off: detail goes to the primary channel, indented.
    - verbose on, structured on: detail goes to the secondary channel,
      unindented, so the primary channel holds records only.
    """

    def __init__(
        self,
        verbose: bool = False,
        structured: bool = False,
        primary: TextIO | None = None,
        secondary: TextIO | None = None,
    ):
        self.verbose = verbose
        self.structured = structured
        self._primary = primary if primary is not None else sys.stdout
        self._secondary = secondary if secondary is not None else sys.stderr

    @property
    def human_channel(self) -> TextIO:
        return self._secondary if self.structured else self._primary

    def detail(self, text: str, indent: int = 0) -> None:
        """Writes verbose-only detail. Multi-line text is indented line by line."""
        if self.verbose:
            self._route(text, indent)

    def summary(self, text: str, indent: int = 0) -> None:
        """Writes text that is shown regardless of verbosity."""
        self._route(text, indent)

    def _route(self, text: str, indent: int) -> None:
        if self.structured or not indent:
            self._write(self.human_channel, text)
            return
        prefix = INDENT * indent
        lines = text.rstrip("\n").split("\n")
        self._write(self._primary, "\n".join(prefix + line for line in lines))

    @staticmethod
    def _write(stream: TextIO, text: str) -> None:
        if not text.endswith("\n"):
            text += "\n"
        stream.write(text)
        stream.flush()


# 🔼⚙️
