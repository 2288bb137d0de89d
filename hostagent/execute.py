"""Running external commands and capturing what they print."""

from __future__ import annotations

import logging
import signal
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, TextIO, Tuple, Union

log = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124

# Enter the namespaces of PID 1 so that commands behave as if run on the host:
# cgroup for podman on some systemd hosts, mount for the host's container
# storage, ipc, and net for host networking information.
_NSENTER_ARGS = ("--target", "1", "--cgroup", "--mount", "--ipc", "--net", "--")


@dataclass(frozen=True)
class ExecResult:
    """Output and exit code of a finished command."""

    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class CommandFailedError(RuntimeError):
    """A command wrote to stderr or exited with a non-zero code."""

    def __init__(self, command: str, exit_code: int, stderr: str) -> None:
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(f"{command} failed: {exit_code} {stderr}")


def _status(returncode: int) -> Tuple[int, str]:
    """Map a process return code to an exit code and a failure description."""
    if returncode == 0:
        return 0, ""
    if returncode > 0:
        return returncode, f"exit status {returncode}"
    name = signal.strsignal(-returncode) or str(-returncode)
    return -1, f"signal: {name.lower()}"


def execute(command: str, *args: str) -> ExecResult:
    """Run a command and collect its stdout, stderr and exit code.

    When the command prints nothing on stderr but fails, stderr holds a short
    description of the failure. A command that cannot be started yields -1.
    """
    log.info("Executing %s %s", command, list(args))
    try:
        proc = subprocess.run(
            [command, *args],
            capture_output=True,
            text=True,
            errors="replace",
            check=False,
        )
    except OSError as exc:
        return ExecResult("", str(exc), -1)
    code, message = _status(proc.returncode)
    return ExecResult(proc.stdout or "", proc.stderr or message, code)


def execute_shell(command: str) -> ExecResult:
    """Run a command line through bash."""
    return execute("bash", "-c", command)


def execute_privileged(command: str, *args: str) -> ExecResult:
    """Run a command inside the host's namespaces through nsenter."""
    return execute("nsenter", *_NSENTER_ARGS, command, *args)


def execute_output_to_file(
    output_file_path: Union[str, Path], command: str, *args: str
) -> ExecResult:
    """Run a command writing its stdout to a file; stdout of the result is empty."""
    try:
        outfile = open(output_file_path, "w", encoding="utf-8")
    except OSError as exc:
        log.error("Failed to create output file %s: %s", output_file_path, exc)
        return ExecResult("", str(exc), -1)
    with outfile:
        try:
            proc = subprocess.run(
                [command, *args],
                stdout=outfile,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                check=False,
            )
        except OSError as exc:
            return ExecResult("", str(exc), -1)
    code, message = _status(proc.returncode)
    return ExecResult("", proc.stderr or message, code)


def _logln(logfile: TextIO, message: str) -> None:
    try:
        logfile.write(f"{message}\n")
    except OSError as exc:
        log.error("Failed logging '%s' to log file: %s", message, exc)


def execute_privileged_to_file(logfile: TextIO, command: str, *args: str) -> None:
    """Run a privileged command, writing the command line and its output to a log.

    Raises CommandFailedError when the command fails or prints on stderr.
    """
    _logln(logfile, f"{command} {' '.join(args)}")
    result = execute_privileged(command, *args)
    if result.stderr or result.exit_code != 0:
        _logln(logfile, result.stderr)
        raise CommandFailedError(command, result.exit_code, result.stderr)
    _logln(logfile, result.stdout)


def log_privileged_command_output(
    logfile: TextIO,
    errors: Optional[List[Exception]],
    description: str,
    command: str,
    *args: str,
) -> List[Exception]:
    """Log a description, run a privileged command and collect its failure.

    Returns the list of collected errors, with this command's failure appended.
    """
    collected: List[Exception] = [] if errors is None else errors
    log.info(description)
    _logln(logfile, description)
    try:
        execute_privileged_to_file(logfile, command, *args)
    except CommandFailedError as exc:
        collected.append(exc)
    return collected


def dry_reboot_happened(marker_path: Union[str, Path]) -> bool:
    """Tell whether a simulated reboot left its marker file on the host."""
    return execute_privileged("stat", str(marker_path)).exit_code == 0