"""Check that the tang servers a host needs for disk encryption answer."""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import List, Sequence
from urllib.parse import urlsplit

from hostagent.execute import ExecResult

log = logging.getLogger(__name__)

TANG_KEYS_PATH = "/adv/"
_REQUEST_TIMEOUT_SECONDS = 30


@dataclass(frozen=True)
class TangServer:
    """A tang server's URL and the thumbprint of the key to fetch."""

    url: str
    thumbprint: str = ""


class TangError(RuntimeError):
    """A tang server could not be described, reached or understood."""


def unmarshal_tang_servers(text: str) -> List[TangServer]:
    """Parse a JSON list of objects with "url" and "thumbprint" fields."""
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise TangError(f"Error unmarshaling tang servers: {exc}") from exc
    if data is None:
        return []
    if not isinstance(data, list):
        raise TangError("Error unmarshaling tang servers: expected a JSON list")
    servers = []
    for item in data:
        if not isinstance(item, dict):
            raise TangError("Error unmarshaling tang servers: expected a JSON object")
        url = item.get("url") or ""
        thumbprint = item.get("thumbprint") or ""
        if not isinstance(url, str) or not isinstance(thumbprint, str):
            raise TangError("Error unmarshaling tang servers: url and thumbprint must be strings")
        servers.append(TangServer(url, thumbprint))
    return servers


def _validate_request_uri(url: str) -> None:
    """Accept an absolute URI or an absolute path, as an HTTP request line does."""
    if not url:
        raise TangError('parse "": empty url')
    try:
        scheme = urlsplit(url).scheme
    except ValueError as exc:
        raise TangError(f'parse "{url}": {exc}') from exc
    if not scheme and not url.startswith("/"):
        raise TangError(f'parse "{url}": invalid URI for request')


def tang_request(server: TangServer) -> dict:
    """Fetch the server's advertisement; raise TangError on any failure.

    Returns the response with its "tang_url" set to the URL that was fetched.
    """
    tang_url = f"{server.url}{TANG_KEYS_PATH}{server.thumbprint}"
    try:
        with urllib.request.urlopen(tang_url, timeout=_REQUEST_TIMEOUT_SECONDS) as response:
            status = response.status
            body = response.read()
    except urllib.error.HTTPError as exc:
        raise TangError(f"HTTP GET failure. Status Code: {exc.code}") from exc
    except (urllib.error.URLError, OSError, ValueError) as exc:
        raise TangError(f"HTTP GET failure: {exc}") from exc

    if status != 200:
        raise TangError(f"HTTP GET failure. Status Code: {status}")
    if not body:
        raise TangError("Empty tang response")
    try:
        data = json.loads(body)
    except ValueError as exc:
        raise TangError(f"Error unmarshaling tang response: {exc}") from exc
    if not isinstance(data, dict):
        raise TangError("Error unmarshaling tang response: expected a JSON object")

    signatures = [
        {"signature": sig.get("signature", ""), "protected": sig.get("protected", "")}
        for sig in data.get("signatures") or []
        if isinstance(sig, dict)
    ]
    return {"tang_url": tang_url, "payload": data.get("payload", ""), "signatures": signatures}


def _format_errors(errors: Sequence[Exception]) -> str:
    points = "\n\t".join(f"* {error}" for error in errors)
    noun = "error" if len(errors) == 1 else "errors"
    return f"{len(errors)} {noun} occurred:\n\t{points}\n\n"


def _response(success: bool, responses: List[dict] | None) -> str:
    return json.dumps({"is_success": success, "tang_server_response": responses})


def _failure(message: str) -> ExecResult:
    return ExecResult(_response(False, None), message, -1)


def check_tang_connectivity(tang_servers_details: str) -> ExecResult:
    """Check every tang server named in the request and return the step's output."""
    try:
        request = json.loads(tang_servers_details)
    except ValueError as exc:
        message = f"Error unmarshaling TangConnectivityRequest: {exc}"
        log.error(message)
        return _failure(message)
    if not isinstance(request, dict):
        message = "Error unmarshaling TangConnectivityRequest: expected a JSON object"
        log.error(message)
        return _failure(message)

    servers_text = request.get("tang_servers")
    if servers_text is None:
        message = "Missing TangServers in checkTangConnectivityRequest"
        log.error(message)
        return _failure(message)
    if not isinstance(servers_text, str):
        message = "Error unmarshaling TangConnectivityRequest: tang_servers must be a string"
        log.error(message)
        return _failure(message)

    try:
        servers = unmarshal_tang_servers(servers_text)
    except TangError as exc:
        log.error("%s", exc)
        return _failure(str(exc))

    errors: List[Exception] = []
    responses: List[dict] = []
    for server in servers:
        try:
            _validate_request_uri(server.url)
        except TangError as exc:
            errors.append(exc)
            continue
        if not server.thumbprint:
            error = TangError(f"Tang thumbprint isn't set for server: {server.url}")
            log.error("%s", error)
            errors.append(error)
            continue
        try:
            response = tang_request(server)
        except TangError as exc:
            errors.append(exc)
            continue
        log.debug("tang server %s response is: %r", server.url, response)
        responses.append(response)

    if errors:
        return _failure(_format_errors(errors))
    return ExecResult(_response(True, responses), "", 0)