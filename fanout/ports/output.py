# /fanout/ports/output.py
from __future__ import annotations

from typing import Protocol


class OutputPort(Protocol):
    def line(self, text: str) -> None:
        """Write one report line."""
