"""Host and address records of an nmap XML report."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import List


@dataclass(frozen=True)
class Status:
    state: str = ""
    reason: str = ""


@dataclass(frozen=True)
class Address:
    addr: str = ""
    addr_type: str = ""


@dataclass
class Host:
    status: Status = field(default_factory=Status)
    addresses: List[Address] = field(default_factory=list)


@dataclass
class NmapRun:
    hosts: List[Host] = field(default_factory=list)


def _parse_host(element: ET.Element) -> Host:
    host = Host()
    for child in element:
        if child.tag == "status":
            host.status = Status(child.get("state", ""), child.get("reason", ""))
        elif child.tag == "address":
            host.addresses.append(Address(child.get("addr", ""), child.get("addrtype", "")))
    return host


def parse_nmaprun(xml_text: str | bytes) -> NmapRun:
    """Parse an nmap XML report; raise ValueError if it is not one."""
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as exc:
        raise ValueError(f"invalid nmap XML: {exc}") from exc
    if root.tag != "nmaprun":
        raise ValueError(f"expected element <nmaprun> but have <{root.tag}>")
    return NmapRun([_parse_host(child) for child in root if child.tag == "host"])