"""Make chrony use requested NTP sources and report the sources it knows."""

from __future__ import annotations

import argparse
import json
import logging
import socket
import sys
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, List, Optional, Protocol, Sequence

from hostagent.execute import TIMEOUT_EXIT_CODE, ExecResult, execute

log = logging.getLogger(__name__)

CHRONY_TIMEOUT_SECONDS = 30


class SourceState(str, Enum):
    """State of an NTP source as chrony reports it."""

    SYNCED = "synced"
    COMBINED = "combined"
    NOT_COMBINED = "not_combined"
    UNREACHABLE = "unreachable"
    ERROR = "error"
    VARIABLE = "variable"


_STATE_MARKS = {
    "*": SourceState.SYNCED,
    "+": SourceState.COMBINED,
    "-": SourceState.NOT_COMBINED,
    "?": SourceState.UNREACHABLE,
    "x": SourceState.ERROR,
    "~": SourceState.VARIABLE,
}


@dataclass(frozen=True)
class NtpSource:
    """An NTP source with its name or address and its state."""

    source_name: str
    source_state: SourceState

    def to_dict(self) -> dict:
        return {"source_name": self.source_name, "source_state": self.source_state.value}


class NtpError(RuntimeError):
    """Chrony could not be queried or configured."""


class NtpDependencies(Protocol):
    """Command execution and name resolution; lookups raise OSError on failure."""

    def execute(self, command: str, *args: str) -> ExecResult: ...

    def lookup_host(self, host: str) -> Sequence[str]: ...

    def lookup_addr(self, addr: str) -> Sequence[str]: ...


class ProcessExecuter:
    """Runs real commands and uses the system resolver."""

    def execute(self, command: str, *args: str) -> ExecResult:
        return execute(command, *args)

    def lookup_host(self, host: str) -> List[str]:
        addresses: List[str] = []
        for *_, sockaddr in socket.getaddrinfo(host, None):
            address = str(sockaddr[0])
            if address not in addresses:
                addresses.append(address)
        return addresses

    def lookup_addr(self, addr: str) -> List[str]:
        hostname, aliases, _ = socket.gethostbyaddr(addr)
        return [hostname, *aliases]


def convert_source_state(val: str) -> SourceState:
    """Map chrony's state mark to a SourceState; unknown marks are errors."""
    return _STATE_MARKS.get(val, SourceState.ERROR)


def format_chrony_sources_output(output: str) -> List[NtpSource]:
    """Parse the server lines (those starting with '^') of `chronyc sources`."""
    sources = []
    for line in output.split("\n"):
        fields = line.split()
        if len(fields) < 2 or not fields[0].startswith("^"):
            continue
        sources.append(NtpSource(fields[1], convert_source_state(fields[0][1:2])))
    return sources


def get_ntp_sources(executer: NtpDependencies) -> List[NtpSource]:
    """List chrony's sources by address; raise NtpError if chrony fails."""
    result = executer.execute(
        "timeout", str(CHRONY_TIMEOUT_SECONDS), "chronyc", "-n", "sources"
    )
    if result.exit_code == 0:
        return format_chrony_sources_output(result.stdout)
    if result.exit_code == TIMEOUT_EXIT_CODE:
        raise NtpError(f"chronyc was timed out after {CHRONY_TIMEOUT_SECONDS} seconds")
    raise NtpError(
        f"chronyc exited with non-zero exit code {result.exit_code}: "
        f"{result.stdout}\n{result.stderr}"
    )


def is_server_configured(executer: NtpDependencies, server: str) -> bool:
    """Tell whether the server, or one of the addresses it resolves to, is a source."""
    try:
        sources = get_ntp_sources(executer)
    except NtpError as exc:
        raise NtpError(f"Failed to get NTP sources: {exc}") from exc

    if any(source.source_name == server for source in sources):
        return True

    try:
        names = list(executer.lookup_host(server))
    except OSError as exc:
        raise NtpError(f"Failed to lookup server {server}: {exc}") from exc

    return any(source.source_name in names for source in sources)


def add_server(executer: NtpDependencies, ntp_source: str) -> None:
    """Add a server to chrony; raise NtpError if chronyc fails."""
    result = executer.execute("chronyc", "add", "server", ntp_source, "iburst")
    if result.exit_code != 0:
        raise NtpError(
            f"chronyc exited with non-zero exit code {result.exit_code}: "
            f"{result.stdout}\n{result.stderr}"
        )


def handle_new_ntp_sources(executer: NtpDependencies, comma_separated_sources: str) -> None:
    """Add every listed source that chrony does not use yet; failures are logged."""
    for ntp_source in comma_separated_sources.split(","):
        try:
            configured = is_server_configured(executer, ntp_source)
        except NtpError as exc:
            log.warning("Failed to check if NTP source %s is configured: %s", ntp_source, exc)
            configured = False
        if configured:
            continue
        try:
            add_server(executer, ntp_source)
        except NtpError as exc:
            log.error("Failed to add NTP server %s: %s", ntp_source, exc)


def _with_resolved_name(executer: NtpDependencies, source: NtpSource) -> NtpSource:
    try:
        names = list(executer.lookup_addr(source.source_name))
    except OSError as exc:
        log.debug("Failed to reverse lookup server %s: %s", source.source_name, exc)
        return source
    if not names:
        log.debug("No hostnames returned on reverse lookup for server %s", source.source_name)
        return source
    return replace(source, source_name=names[0].strip("."))


def _failure(message: str) -> ExecResult:
    return ExecResult("", message, -1)


def run(request_str: str, executer: NtpDependencies) -> ExecResult:
    """Handle an NTP synchronization request and return the step's output.

    The output is a JSON document listing chrony's sources, with names
    resolved where a reverse lookup succeeds.
    """
    try:
        request = json.loads(request_str)
    except ValueError as exc:
        log.error("Failed to unmarshal ntp request string %s: %s", request_str, exc)
        return _failure(str(exc))
    if not isinstance(request, dict):
        log.error("Failed to unmarshal ntp request string %s", request_str)
        return _failure("ntp request must be a JSON object")

    ntp_source: Optional[str] = request.get("ntp_source")
    if ntp_source is not None and not isinstance(ntp_source, str):
        return _failure("ntp_source must be a string")
    if ntp_source:
        handle_new_ntp_sources(executer, ntp_source)

    try:
        sources = get_ntp_sources(executer)
    except NtpError as exc:
        log.error("Failed to get NTP sources: %s", exc)
        return _failure(str(exc))

    resolved: Iterable[NtpSource] = (_with_resolved_name(executer, s) for s in sources)
    response = {"ntp_sources": [source.to_dict() for source in resolved]}
    return ExecResult(json.dumps(response), "", 0)


def dry_run_ntp() -> ExecResult:
    """The output reported instead of querying chrony in dry-run mode."""
    return ExecResult('{"ntp_sources": []}', "", 0)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run one NTP synchronization request given on the command line."""
    parser = argparse.ArgumentParser(prog="ntp_synchronizer")
    parser.add_argument("--dry-run", action="store_true", help="do not touch chrony")
    parser.add_argument("request", help="the synchronization request as JSON")
    options = parser.parse_args(argv)

    result = dry_run_ntp() if options.dry_run else run(options.request, ProcessExecuter())
    sys.stdout.write(result.stdout)
    sys.stderr.write(result.stderr)
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())