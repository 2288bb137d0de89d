"""Pull a new agent image on request, one pull at a time."""

from __future__ import annotations

import json
import logging
import threading
from enum import Enum
from typing import Protocol

from hostagent.execute import ExecResult, execute_privileged

log = logging.getLogger(__name__)

# Held while an image pull runs, so that requests never pull concurrently.
_pull_lock = threading.Lock()


class UpgradeResult(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class Dependencies(Protocol):
    def execute_privileged(self, command: str, *args: str) -> ExecResult: ...


class RealDependencies:
    """Runs commands in the host's namespaces."""

    def execute_privileged(self, command: str, *args: str) -> ExecResult:
        return execute_privileged(command, *args)


def _response(image: str, result: UpgradeResult | None) -> ExecResult:
    body: dict = {}
    if image:
        body["agent_image"] = image
    if result is not None:
        body["result"] = result.value
    return ExecResult(json.dumps(body), "", 0)


def run(request_str: str, dependencies: Dependencies) -> ExecResult:
    """Pull the requested agent image and report whether it succeeded.

    A failed pull is still a successful step: the response carries the
    failure. When a pull is already running the response has no result.
    """
    try:
        request = json.loads(request_str)
    except ValueError as exc:
        log.error("Failed to parse upgrade agent request %r: %s", request_str, exc)
        return ExecResult("", str(exc), -1)
    if not isinstance(request, dict):
        return ExecResult("", "upgrade agent request must be a JSON object", -1)
    image = request.get("agent_image") or ""
    if not isinstance(image, str):
        return ExecResult("", "agent_image must be a string", -1)

    if not _pull_lock.acquire(blocking=False):
        log.info("Image pull is in progress (image=%s)", image)
        return _response(image, None)
    try:
        log.info("Pulling image %s", image)
        pull = dependencies.execute_privileged("podman", "pull", image)
    finally:
        _pull_lock.release()

    if pull.exit_code == 0:
        log.info("Successfully pulled image %s", image)
        return _response(image, UpgradeResult.SUCCESS)
    log.error(
        "Failed to pull image %s (code=%d, stdout=%r, stderr=%r)",
        image, pull.exit_code, pull.stdout, pull.stderr,
    )
    return _response(image, UpgradeResult.FAILURE)