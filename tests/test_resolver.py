"""Test di GatewayResolver e CKBFSGatewayClient su una sessione requests finta."""
import json
import threading

import pytest
import requests

from ckbfs_resolver.models import OutPointRef
from ckbfs_resolver.resolver import GatewayResolver
from ckbfs_resolver.sdk.ckbfs_sdk import ApiError, CKBFSGatewayClient

from conftest import OUTPOINT_URI, TX_HASH

BASE_URL = "http://gateway.local/api/v1"
RPC_URLS = {"testnet": "http://rpc.local/testnet"}


def make_response(status_code=200, body=None, content=None, headers=None) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status_code
    if body is not None:
        resp._content = json.dumps(body).encode("utf-8")
        resp.headers["Content-Type"] = "application/json"
    else:
        resp._content = content or b""
    for key, value in (headers or {}).items():
        resp.headers[key] = value
    return resp


class FakeSession:
    """Restituisce le risposte in coda per (metodo, url) e registra le richieste."""

    def __init__(self) -> None:
        self.routes = {}
        self.requests = []

    def add(self, method, url, response) -> None:
        self.routes.setdefault((method, url), []).append(response)

    def request(self, method, url, timeout=None, **kwargs):
        self.requests.append((method, url, kwargs))
        queued = self.routes.get((method, url))
        if not queued:
            raise requests.ConnectionError(f"no route for {method} {url}")
        result = queued.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def gateway(session) -> CKBFSGatewayClient:
    return CKBFSGatewayClient(BASE_URL, rpc_urls=RPC_URLS, timeout=5, session=session)


IDENTIFIER = OutPointRef(tx_hash="0x" + TX_HASH, index=0, raw=OUTPOINT_URI)

METADATA = {
    "success": True,
    "data": {
        "filename": "hello.txt",
        "contentType": "text/plain",
        "size": 5,
        "checksum": 99,
        "backLinks": [{"txHash": "0x" + "cd" * 32, "index": 2}],
    },
}


def test_resolve_combines_metadata_and_raw(session, gateway) -> None:
    session.add("GET", f"{BASE_URL}/ckbfs/metadata", make_response(body=METADATA))
    session.add("GET", f"{BASE_URL}/ckbfs", make_response(content=b"Hello", headers={"Content-Type": "text/plain"}))

    retrieved = GatewayResolver(BASE_URL, client=gateway).resolve(IDENTIFIER, "testnet")

    assert retrieved.filename == "hello.txt"
    assert retrieved.content == b"Hello"
    assert retrieved.size == 5
    assert retrieved.checksum == 99
    assert retrieved.back_links[0].index == 2

    _, _, kwargs = session.requests[1]
    assert kwargs["params"] == {"uri": OUTPOINT_URI, "network": "testnet", "format": "raw"}


def test_resolve_falls_back_to_raw_headers(session, gateway) -> None:
    session.add("GET", f"{BASE_URL}/ckbfs/metadata", make_response(body={"data": {"size": 3}}))
    session.add("GET", f"{BASE_URL}/ckbfs", make_response(
        content=b"abc", headers={"Content-Type": "image/gif", "X-CKBFS-Filename": "a.gif"},
    ))

    retrieved = GatewayResolver(BASE_URL, client=gateway).resolve(IDENTIFIER, "testnet")
    assert retrieved.content_type == "image/gif"
    assert retrieved.filename == "a.gif"
    assert retrieved.back_links is None


def test_upstream_error_code_is_kept(session, gateway) -> None:
    session.add("GET", f"{BASE_URL}/ckbfs/metadata", make_response(
        status_code=502, body={"success": False, "error": {"code": "CKBFS_DECODE_ERROR", "message": "bad witness"}},
    ))
    with pytest.raises(ApiError) as info:
        gateway.get_metadata(OUTPOINT_URI, "testnet")
    assert info.value.code == "CKBFS_DECODE_ERROR"
    assert info.value.status_code == 502
    assert str(info.value) == "bad witness"


def test_plain_404_is_file_not_found(session, gateway) -> None:
    session.add("GET", f"{BASE_URL}/ckbfs/metadata", make_response(status_code=404, content=b"not here"))
    with pytest.raises(ApiError) as info:
        gateway.get_metadata(OUTPOINT_URI, "testnet")
    assert info.value.code == "FILE_NOT_FOUND"


def test_connection_errors(session, gateway) -> None:
    session.add("GET", f"{BASE_URL}/ckbfs/metadata", requests.Timeout("read timed out"))
    with pytest.raises(ApiError) as info:
        gateway.get_metadata(OUTPOINT_URI, "testnet")
    assert info.value.code == "TIMEOUT_ERROR"

    with pytest.raises(ApiError) as info:
        gateway.get_metadata(OUTPOINT_URI, "testnet")
    assert info.value.code == "NETWORK_ERROR"


def test_malformed_metadata_is_decode_error(session, gateway) -> None:
    session.add("GET", f"{BASE_URL}/ckbfs/metadata", make_response(body={"data": {"size": "many"}}))
    session.add("GET", f"{BASE_URL}/ckbfs", make_response(content=b"x"))
    with pytest.raises(ApiError) as info:
        GatewayResolver(BASE_URL, client=gateway).resolve(IDENTIFIER, "testnet")
    assert info.value.code == "CKBFS_DECODE_ERROR"


def test_probe_uses_tip_header(session, gateway) -> None:
    session.add("POST", RPC_URLS["testnet"], make_response(body={"jsonrpc": "2.0", "id": 1, "result": {"number": "0x10"}}))
    assert GatewayResolver(BASE_URL, client=gateway).probe("testnet") == {"number": "0x10"}

    _, _, kwargs = session.requests[0]
    assert kwargs["json"]["method"] == "get_tip_header"


def test_probe_failures(session, gateway) -> None:
    resolver = GatewayResolver(BASE_URL, client=gateway)

    with pytest.raises(ApiError) as info:
        resolver.probe("mainnet")
    assert info.value.code == "INVALID_NETWORK"

    session.add("POST", RPC_URLS["testnet"], make_response(body={"jsonrpc": "2.0", "id": 1, "error": {"code": -1}}))
    with pytest.raises(ApiError) as info:
        resolver.probe("testnet")
    assert info.value.code == "BLOCKCHAIN_ERROR"

    session.add("POST", RPC_URLS["testnet"], make_response(body={"jsonrpc": "2.0", "id": 2, "result": None}))
    with pytest.raises(ApiError) as info:
        resolver.probe("testnet")
    assert info.value.code == "NETWORK_ERROR"


def test_each_thread_gets_its_own_session() -> None:
    client = CKBFSGatewayClient(BASE_URL)
    sessions = []
    worker = threading.Thread(target=lambda: sessions.append(client.session))
    worker.start()
    worker.join()

    assert client.session is client.session
    assert isinstance(sessions[0], requests.Session)
    assert sessions[0] is not client.session


def test_injected_session_is_shared(session, gateway) -> None:
    seen = []
    worker = threading.Thread(target=lambda: seen.append(gateway.session))
    worker.start()
    worker.join()
    assert seen[0] is session
    assert gateway.session is session
