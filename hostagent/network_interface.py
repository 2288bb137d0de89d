"""A network interface whose kind and speed are read from the system."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Protocol, Tuple

log = logging.getLogger(__name__)

_INT32_MAX = 2**31 - 1
_INT32_MIN = -(2**31)
_INTEGER = re.compile(r"[+-]?\d+")


class InterfaceDependencies(Protocol):
    """System access a NetworkInterface needs; failures raise OSError."""

    def eval_symlinks(self, path: str) -> str: ...

    def link_type(self, name: str) -> str: ...

    def read_file(self, path: str) -> bytes: ...


@dataclass
class NetworkInterface:
    """A network interface of the host."""

    name: str
    dependencies: InterfaceDependencies
    mtu: int = 0
    hardware_addr: str = ""
    flags: int = 0
    addresses: Tuple[str, ...] = field(default_factory=tuple)

    def interface_type(self) -> str:
        """Return "physical", or the link type reported for a virtual interface."""
        if self.is_physical():
            return "physical"
        return self.dependencies.link_type(self.name)

    def is_physical(self) -> bool:
        """Return False only when the sysfs entry resolves under a virtual device."""
        try:
            resolved = self.dependencies.eval_symlinks(f"/sys/class/net/{self.name}")
        except OSError as exc:
            log.warning("Could not determine if interface %s is physical: %s", self.name, exc)
            return True
        return "/virtual/" not in resolved

    def _has_link_type(self, kind: str) -> bool:
        try:
            return self.dependencies.link_type(self.name) == kind
        except OSError:
            return False

    def is_bonding(self) -> bool:
        return self._has_link_type("bond")

    def is_vlan(self) -> bool:
        return self._has_link_type("vlan")

    def speed_mbps(self) -> int:
        """Return the link speed in Mbps, or 0 when it cannot be read."""
        try:
            raw = self.dependencies.read_file(f"/sys/class/net/{self.name}/speed")
        except OSError as exc:
            log.warning("Could not read %s speed: %s", self.name, exc)
            return 0
        text = raw.decode("utf-8", errors="replace").strip()
        if not _INTEGER.fullmatch(text):
            log.warning("Could not parse %s speed: %r", self.name, text)
            return 0
        value = int(text)
        if value > _INT32_MAX or value < _INT32_MIN:
            log.warning("Could not parse %s speed: %r out of range", self.name, text)
            return max(_INT32_MIN, min(_INT32_MAX, value))
        return value