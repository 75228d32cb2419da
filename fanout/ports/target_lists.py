# /fanout/ports/target_lists.py
from __future__ import annotations

from typing import Protocol


class TargetListPort(Protocol):
    def addresses(self, raw: str | None) -> list[str]:
        """Parse a comma-separated address list; raise ConfigError when invalid."""

    def ports(self, raw: str | None) -> list[str]:
        """Parse a comma-separated port list; raise ConfigError when invalid."""
