import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from hostagent.tang_connectivity import (
    TangError,
    TangServer,
    check_tang_connectivity,
    tang_request,
    unmarshal_tang_servers,
)

TANG_RESPONSE = {
    "tang_url": "http://127.0.0.1:7500",
    "payload": "some_fake_payload",
    "signatures": [
        {"signature": "some_fake_signature1", "protected": "foobar1"},
        {"signature": "some_fake_signature2", "protected": "foobar2"},
    ],
}


class _TangHandler(BaseHTTPRequestHandler):
    def log_message(self, *args):
        pass

    def _send(self, status, body=b""):
        self.send_response(status)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self):
        if self.path.startswith("/adv/"):
            self._send(200, json.dumps(TANG_RESPONSE).encode())
        elif self.path.startswith("/empty/adv/"):
            self._send(200)
        elif self.path.startswith("/bad/adv/"):
            self._send(200, b"not json")
        else:
            self._send(404, b"404 page not found")


@pytest.fixture
def tang_url():
    server = ThreadingHTTPServer(("127.0.0.1", 0), _TangHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}"
    server.shutdown()
    server.server_close()


def request_str(servers):
    return json.dumps({"tang_servers": json.dumps(servers)})


def check_success(stdout):
    response = json.loads(stdout)
    assert response["is_success"] is True
    assert len(response["tang_server_response"]) > 0
    for res in response["tang_server_response"]:
        assert res["payload"]
        assert res["tang_url"]
        assert len(res["signatures"]) > 0
        for sig in res["signatures"]:
            assert sig["signature"]
            assert sig["protected"]


def test_successful_connection(tang_url):
    result = check_tang_connectivity(
        request_str([{"url": tang_url, "thumbprint": "fake_thumbprint1"}])
    )
    assert result.exit_code == 0
    assert result.stderr == ""
    check_success(result.stdout)


def test_multiple_tang_servers(tang_url):
    result = check_tang_connectivity(
        request_str([
            {"url": tang_url, "thumbprint": "fake_thumbprint1"},
            {"url": tang_url, "thumbprint": "fake_thumbprint2"},
        ])
    )
    assert result.exit_code == 0
    assert result.stderr == ""
    check_success(result.stdout)
    assert len(json.loads(result.stdout)["tang_server_response"]) == 2


def test_missing_thumbprint(tang_url):
    result = check_tang_connectivity(request_str([{"url": tang_url, "thumbprint": ""}]))
    assert result.exit_code == -1
    assert "Tang thumbprint isn't set for server" in result.stderr
    assert json.loads(result.stdout)["is_success"] is False


def test_missing_tang_url():
    result = check_tang_connectivity(request_str([{"url": "", "thumbprint": "fake_thumbprint1"}]))
    assert result.exit_code == -1
    assert "empty url" in result.stderr


def test_invalid_tang_url():
    result = check_tang_connectivity(request_str([{"url": "foo", "thumbprint": "fake_thumbprint1"}]))
    assert result.exit_code == -1
    assert "invalid URI for request" in result.stderr


def test_tang_server_not_available(tang_url):
    result = check_tang_connectivity(
        request_str([{"url": tang_url + "/missing", "thumbprint": "fake_thumbprint1"}])
    )
    assert result.exit_code == -1
    assert "HTTP GET failure. Status Code: 404" in result.stderr


def test_multiple_tang_servers_one_not_available(tang_url):
    result = check_tang_connectivity(
        request_str([
            {"url": tang_url, "thumbprint": "fake_thumbprint1"},
            {"url": tang_url + "/missing", "thumbprint": "fake_thumbprint2"},
        ])
    )
    assert result.exit_code == -1
    assert "HTTP GET failure. Status Code: 404" in result.stderr
    assert result.stderr.startswith("1 error occurred:")


def test_multiple_tang_servers_one_not_valid_url(tang_url):
    result = check_tang_connectivity(
        request_str([
            {"url": tang_url, "thumbprint": "fake_thumbprint1"},
            {"url": "foo", "thumbprint": "fake_thumbprint2"},
        ])
    )
    assert result.exit_code == -1
    assert "invalid URI for request" in result.stderr


def test_all_errors_are_collected():
    result = check_tang_connectivity(
        request_str([
            {"url": "foo", "thumbprint": "fake_thumbprint1"},
            {"url": "", "thumbprint": "fake_thumbprint2"},
        ])
    )
    assert result.exit_code == -1
    assert result.stderr.startswith("2 errors occurred:")
    assert "invalid URI for request" in result.stderr
    assert "empty url" in result.stderr


def test_invalid_request_format():
    result = check_tang_connectivity("some invalid request")
    assert result.exit_code == -1
    assert "Error unmarshaling TangConnectivityRequest" in result.stderr


def test_missing_tang_servers():
    result = check_tang_connectivity("{}")
    assert result.exit_code == -1
    assert "Missing TangServers" in result.stderr


def test_tang_request_sets_fetched_url(tang_url):
    response = tang_request(TangServer(tang_url, "fake_thumbprint1"))
    assert response["tang_url"] == tang_url + "/adv/fake_thumbprint1"
    assert response["payload"] == "some_fake_payload"
    assert response["signatures"] == TANG_RESPONSE["signatures"]


def test_tang_request_empty_response(tang_url):
    with pytest.raises(TangError, match="Empty tang response"):
        tang_request(TangServer(tang_url + "/empty", "fake_thumbprint1"))


def test_tang_request_bad_json(tang_url):
    with pytest.raises(TangError, match="Error unmarshaling tang response"):
        tang_request(TangServer(tang_url + "/bad", "fake_thumbprint1"))


def test_unmarshal_tang_servers():
    servers = unmarshal_tang_servers(
        json.dumps([{"url": "http://tang.example.com", "thumbprint": "fake_thumbprint1"}])
    )
    assert servers == [TangServer("http://tang.example.com", "fake_thumbprint1")]


def test_unmarshal_tang_servers_rejects_non_list():
    with pytest.raises(TangError):
        unmarshal_tang_servers('{"url": "x"}')