"""A client for the WireMock admin API, used to fake the installer service."""

from __future__ import annotations

import itertools
import json
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

INFRA_ENV_ID = "11111111-1111-1111-1111-111111111111"
_INFRA_ENVS_PATH = "/api/assisted-install/v2/infra-envs"


def register_url(infra_env_id: str = INFRA_ENV_ID) -> str:
    """Path hosts register at."""
    return f"{_INFRA_ENVS_PATH}/{infra_env_id}/hosts"


def next_steps_url(infra_env_id: str, host_id: str) -> str:
    """Path a host polls for instructions and posts step replies to."""
    return f"{_INFRA_ENVS_PATH}/{infra_env_id}/hosts/{host_id}/instructions"


def host_ids() -> Iterator[str]:
    """Yield distinct host ids, numbered from zero in hexadecimal."""
    for index in itertools.count():
        yield f"00000000-0000-0000-0000-0000000000{index:02x}"


def _lookup(data: Dict[str, Any], key: str, default: Any = None) -> Any:
    """Look a key up ignoring case, preferring an exact match."""
    if key in data:
        return data[key]
    lowered = key.lower()
    for name, value in data.items():
        if name.lower() == lowered:
            return value
    return default


@dataclass
class RequestDefinition:
    """Which requests a stub answers."""

    method: str
    url: str = ""
    url_pattern: str = ""
    body_patterns: Optional[List[Any]] = None
    headers: Optional[Dict[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.url:
            data["url"] = self.url
        if self.url_pattern:
            data["urlPattern"] = self.url_pattern
        data["method"] = self.method
        data["bodyPatterns"] = self.body_patterns
        data["headers"] = self.headers
        return data


@dataclass
class ResponseDefinition:
    """What a stub answers with."""

    status: int
    body: str = ""
    headers: Optional[Dict[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "body": self.body, "headers": self.headers}


@dataclass
class StubDefinition:
    request: Optional[RequestDefinition] = None
    response: Optional[ResponseDefinition] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "request": self.request.to_dict() if self.request else None,
            "response": self.response.to_dict() if self.response else None,
        }


@dataclass
class RequestOccurrence:
    """A request WireMock received, with the response it gave."""

    id: str = ""
    url: str = ""
    method: str = ""
    body: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    response_status: int = 0
    response_body: str = ""
    was_matched: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RequestOccurrence":
        request = _lookup(data, "request") or {}
        response = _lookup(data, "response") or {}
        headers = _lookup(request, "headers") or {}
        return cls(
            id=_lookup(data, "id", "") or "",
            url=_lookup(request, "url", "") or "",
            method=_lookup(request, "method", "") or "",
            body=_lookup(request, "body", "") or "",
            headers={str(k): str(v) for k, v in headers.items()} if isinstance(headers, dict) else {},
            response_status=_lookup(response, "status", 0) or 0,
            response_body=_lookup(response, "body", "") or "",
            was_matched=bool(_lookup(data, "wasMatched", False)),
        )


class WireMockClient:
    """Adds and removes stubs and reads the request journal of a WireMock server.

    Response status codes are not checked; transport failures raise OSError.
    """

    def __init__(self, base_url: str, timeout: float = 30.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @property
    def mappings_url(self) -> str:
        return f"{self.base_url}/__admin/mappings"

    @property
    def requests_url(self) -> str:
        return f"{self.base_url}/__admin/requests"

    def _call(self, method: str, url: str, payload: Any = None) -> bytes:
        data = None
        headers = {}
        if payload is not None:
            data = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"
        request = urllib.request.Request(url, data=data, headers=headers, method=method)
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                return response.read()
        except urllib.error.HTTPError as exc:
            with exc:
                return exc.read()

    def add_stub(self, stub: StubDefinition) -> str:
        """Register a stub and return the id WireMock gave it."""
        body = self._call("POST", self.mappings_url, stub.to_dict())
        mapping = json.loads(body)
        if not isinstance(mapping, dict):
            raise ValueError("unexpected mapping response from WireMock")
        return _lookup(mapping, "id", "") or ""

    def delete_stub(self, stub_id: str) -> None:
        self._call("DELETE", f"{self.mappings_url}/{stub_id}")

    def delete_all_stubs(self) -> None:
        self._call("DELETE", self.mappings_url)

    def reset_requests(self) -> None:
        self._call("DELETE", self.requests_url)

    def requests(self) -> List[RequestOccurrence]:
        """Return every request in WireMock's journal."""
        journal = json.loads(self._call("GET", self.requests_url))
        if not isinstance(journal, dict):
            raise ValueError("unexpected request journal from WireMock")
        return [RequestOccurrence.from_dict(item) for item in _lookup(journal, "requests") or []]

    def find_all_equal_url_requests(self, url: str, method: str) -> List[RequestOccurrence]:
        return [r for r in self.requests() if r.url == url and r.method == method]

    def find_prefix_url_requests(self, url: str, method: str) -> List[RequestOccurrence]:
        return [r for r in self.requests() if r.url.startswith(url) and r.method == method]