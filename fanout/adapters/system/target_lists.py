# /fanout/adapters/system/target_lists.py
from __future__ import annotations

import logging
from ipaddress import ip_network

from fanout.domain.models import ConfigError

LOG = logging.getLogger("adapter.target_lists")


def split_list(raw: str | None, what: str) -> list[str]:
    """Split a comma-separated flag value; empty input or blank items are errors."""
    if raw is None or not raw.strip():
        raise ConfigError(f"{what} list is empty")
    items = [item.strip() for item in raw.split(",")]
    if any(not item for item in items):
        raise ConfigError(f"{what} list has an empty element: {raw!r}")
    return items


class TargetLists:
    def __init__(self, *, expand_cidr: bool, max_addresses: int) -> None:
        self.expand_cidr = expand_cidr
        self.max_addresses = max_addresses

    def ports(self, raw: str | None) -> list[str]:
        ports = split_list(raw, "port")
        for p in ports:
            if not (p.isascii() and p.isdigit()) or not 1 <= int(p) <= 65535:
                raise ConfigError(f"invalid port: {p!r}")
        return ports

    def addresses(self, raw: str | None) -> list[str]:
        hosts: list[str] = []
        for item in split_list(raw, "address"):
            if self.expand_cidr and "/" in item:
                try:
                    net = ip_network(item, strict=False)
                except ValueError as e:
                    raise ConfigError(f"invalid network {item!r}: {e}") from e
                if net.num_addresses > self.max_addresses:
                    raise ConfigError(f"network {item} exceeds {self.max_addresses} addresses")
                hosts.extend(str(addr) for addr in net.hosts())
            else:
                hosts.append(item)  # ip literal or hostname, resolved by the worker

            if len(hosts) > self.max_addresses:
                LOG.warning(
                    "expanded addresses exceed max", extra={"extra": {"max": self.max_addresses}}
                )
                raise ConfigError(f"expanded addresses exceed {self.max_addresses}")

        LOG.info("parsed addresses", extra={"extra": {"out": len(hosts)}})
        return hosts
