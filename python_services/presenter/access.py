"""Controller allowlist: which remote addresses may use the Control API."""

from __future__ import annotations

import ipaddress
import logging
from typing import Iterable, Optional

logger = logging.getLogger(__name__)


def normalize_remote(address: Optional[str]) -> str:
    """Strip the IPv4-mapped IPv6 prefix and fold ::1 into 127.0.0.1."""
    value = (address or "").strip()
    if value.lower().startswith("::ffff:"):
        value = value[7:]
    if value == "::1":
        value = "127.0.0.1"
    return value


def is_loopback(address: str) -> bool:
    try:
        return ipaddress.ip_address(address).is_loopback
    except ValueError:
        return address == "localhost"


def matches(address: str, entry: str) -> bool:
    entry = entry.strip()
    if not entry:
        return False
    if "/" in entry:
        try:
            network = ipaddress.ip_network(entry, strict=False)
            return ipaddress.ip_address(address) in network
        except ValueError:
            logger.debug(f"[Access] Ignoring malformed allowlist entry {entry!r}")
            return False
    return normalize_remote(entry) == address


def is_allowed(remote: Optional[str], allowlist: Iterable[str]) -> bool:
    """Loopback is always allowed; an empty allowlist allows everyone."""
    address = normalize_remote(remote)
    entries = [e for e in allowlist if e and e.strip()]
    if not entries or is_loopback(address):
        return True
    return any(matches(address, entry) for entry in entries)
