"""Derive a stable machine identifier from hardware serials or MAC addresses."""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Protocol

log = logging.getLogger(__name__)

SERIAL_DEFAULT_STRING = "default string"
SERIAL_UNSPECIFIED_BASE_BOARD_STRING = "unspecified base board serial number"
SERIAL_UNSPECIFIED_SYSTEM_STRING = "unspecified system serial number"
SERIAL_NOT_SPECIFIED = "not specified"
UNKNOWN = "unknown"
ZEROES_UUID = "00000000-0000-0000-0000-000000000000"
# All hosts of this hardware type report the same UUID.
KALOOM_UUID = "03000200-0400-0500-0006-000700080009"
FAILURE_UUID = "deaddead-dead-dead-dead-deaddeaddead"

_UNKNOWN_SERIALS = frozenset({
    "", UNKNOWN, "none",
    SERIAL_UNSPECIFIED_BASE_BOARD_STRING, SERIAL_UNSPECIFIED_SYSTEM_STRING,
    SERIAL_DEFAULT_STRING, SERIAL_NOT_SPECIFIED,
})
_UNKNOWN_UUIDS = frozenset({"", UNKNOWN, ZEROES_UUID, KALOOM_UUID})
_UUID_PATTERN = re.compile(
    r"[0-9a-f]{8}-?[0-9a-f]{4}-?[0-9a-f]{4}-?[0-9a-f]{4}-?[0-9a-f]{12}", re.IGNORECASE
)


@dataclass(frozen=True)
class InterfaceInfo:
    """A network interface's name and MAC address (empty when it has none)."""

    name: str
    mac_address: str = ""


class SerialDiscovery(Protocol):
    """Reads identifiers from the hardware; failures raise OSError."""

    def product_uuid(self) -> str: ...

    def baseboard_serial(self) -> str: ...


def md5_generate_uuid(text: str) -> str:
    """Format the MD5 digest of the text as a UUID."""
    digest = hashlib.md5(text.encode("utf-8")).hexdigest()
    return f"{digest[:8]}-{digest[8:12]}-{digest[12:16]}-{digest[16:20]}-{digest[20:]}"


def read_system_uuid(discovery: SerialDiscovery) -> Optional[str]:
    """Return the lower-cased product UUID, or None when it is missing or bogus."""
    try:
        value = discovery.product_uuid()
    except OSError as exc:
        log.warning("Could not find system UUID: %s", exc)
        value = ""
    if not _UUID_PATTERN.fullmatch(value) or value.lower() in _UNKNOWN_UUIDS:
        log.warning("Could not get system UUID. Got %s", value)
        return None
    return value.lower()


def read_motherboard_serial(discovery: SerialDiscovery) -> Optional[str]:
    """Return a UUID made from the motherboard serial, or None if it is unusable."""
    try:
        serial = discovery.baseboard_serial()
    except OSError as exc:
        log.warning("Failed to get motherboard serial: %s", exc)
        return None
    log.info("Motherboard serial number is %s", serial)
    if serial.lower() in _UNKNOWN_SERIALS:
        return None
    return md5_generate_uuid(serial)


def uuid_from_network_interfaces(interfaces: Iterable[InterfaceInfo]) -> Optional[str]:
    """Return a UUID made from the lowest MAC address, or None if there is none."""
    with_mac = [iface for iface in interfaces if iface.mac_address]
    if not with_mac:
        return None
    chosen = min(with_mac, key=lambda iface: iface.mac_address)
    log.info("Using %s mac from interface %s to provide node-uuid", chosen.mac_address, chosen.name)
    return md5_generate_uuid(chosen.mac_address)


def read_id(
    discovery: SerialDiscovery,
    interfaces_provider: Callable[[], Iterable[InterfaceInfo]],
) -> str:
    """Pick the machine id: motherboard serial, then system UUID, then MAC address.

    Returns FAILURE_UUID when none of them is usable.
    """
    serial_uuid = read_motherboard_serial(discovery)
    if serial_uuid is not None:
        return serial_uuid

    log.warning("No valid motherboard serial, using system UUID instead")
    system_uuid = read_system_uuid(discovery)
    if system_uuid is not None:
        return system_uuid

    log.warning("No valid system UUID, moving to network interfaces mac based UUID")
    interfaces_uuid = uuid_from_network_interfaces(interfaces_provider())
    if interfaces_uuid is not None:
        return interfaces_uuid

    return FAILURE_UUID