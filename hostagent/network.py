"""IPv4 detection and IPv6 prefix correction from advertised routes."""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Protocol, Sequence, Union

log = logging.getLogger(__name__)

FAMILY_V6 = 10
RTPROT_RA = 9

_Network = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


def is_ipv4_addr(ip: str) -> bool:
    """Return True if the text is a valid IPv4 address."""
    if "." not in ip:
        return False
    try:
        ipaddress.ip_address(ip)
    except ValueError:
        return False
    return True


@dataclass(frozen=True)
class Route:
    """A route: its destination network (None for a default route) and protocol."""

    dst: Optional[_Network] = None
    protocol: int = 0

    def __post_init__(self) -> None:
        if isinstance(self.dst, str):
            object.__setattr__(self, "dst", ipaddress.ip_network(self.dst, strict=False))


class RouteFinder(Protocol):
    """Finds links by name and lists the routes of a link."""

    def link_by_name(self, name: str) -> Any: ...

    def route_list(self, link: Any, family: int) -> Sequence[Route]: ...


def is_usable_ipv6_route(route: Route) -> bool:
    """Return True for an advertised IPv6 route with a destination."""
    if route.dst is None:
        return False
    if route.dst.version != 6:
        return False
    return route.protocol == RTPROT_RA


def _usable_ipv6_routes(link: Any, finder: RouteFinder) -> List[Route]:
    usable = []
    for route in finder.route_list(link, FAMILY_V6):
        if is_usable_ipv6_route(route):
            usable.append(route)
        else:
            log.debug("Ignoring filtered route %r", route)
    return usable


def _with_route_prefix(addr: str, routes: Iterable[Route]) -> str:
    if not addr or ":" not in addr:
        return addr
    if "/" not in addr:
        log.warning("Error parsing CIDR %s", addr)
        return addr
    try:
        ip = ipaddress.ip_interface(addr).ip
    except ValueError as exc:
        log.warning("Error parsing CIDR %s: %s", addr, exc)
        return addr
    for route in routes:
        if route.dst is not None and ip in route.dst:
            return f"{ip}/{route.dst.prefixlen}"
    return addr


def set_v6_prefixes_for_address(
    link: str, finder: RouteFinder, addresses: Sequence[str]
) -> List[str]:
    """Give IPv6 addresses the prefix length of the advertised route holding them.

    Without this every IPv6 address appears as a single host (/128). Returns
    the addresses, corrected where a route matches; errors of the finder
    propagate.
    """
    if not addresses:
        return []
    found = finder.link_by_name(link)
    routes = _usable_ipv6_routes(found, finder)
    return [_with_route_prefix(addr, routes) for addr in addresses]