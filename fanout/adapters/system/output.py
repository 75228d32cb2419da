# /fanout/adapters/system/output.py
from __future__ import annotations

import sys
from typing import TextIO


class ConsoleOutput:
    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stdout

    def line(self, text: str) -> None:
        print(text, file=self._stream, flush=True)


class BufferedOutput:
    """Collects report lines for surfaces that return them instead of printing."""

    def __init__(self) -> None:
        self.lines: list[str] = []

    def line(self, text: str) -> None:
        self.lines.append(text)
