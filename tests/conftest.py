# -*- coding: utf-8 -*-
"""Fixture condivise: resolver finto, servizio e client HTTP."""
import threading
import time
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from ckbfs_resolver.models import BackLink, RetrievedFile
from ckbfs_resolver.resolver import Resolver

from app.main import app, get_ckbfs_service
from app.service import CKBFSService

TX_HASH = "431c9d668c1815d26eb4f7ac6256eb350ab351474daea8d588400146ab228780"
TYPE_ID = "bce89252cece632ef819943bed9cd0e2576f8ce26f9f02075b621b1c9a28056a"

OUTPOINT_URI = f"ckbfs://{TX_HASH}i0"
TYPEID_URI = f"ckbfs://{TYPE_ID}"
MISSING_URI = f"ckbfs://{'f' * 64}i0"

HELLO = RetrievedFile(
    filename="hello.txt",
    content_type="text/plain",
    size=5,
    content=b"Hello",
    checksum=123456,
    back_links=[BackLink(tx_hash="0x" + "ab" * 32, index=1)],
)

IMAGE = RetrievedFile(
    filename="dot.png",
    content_type="image/png",
    size=4,
    content=b"\x89PNG",
)


class FakeResolver(Resolver):
    """
    Resolver in memoria.

    - `files`: raw URI -> RetrievedFile (URI assente -> None)
    - `errors`: raw URI -> lista di eccezioni sollevate ai primi tentativi
    - `delay`: secondi di attesa prima di rispondere
    - `down`: reti che falliscono la sonda
    """

    def __init__(self, files: Optional[Dict[str, RetrievedFile]] = None) -> None:
        self.files = dict(files or {})
        self.errors: Dict[str, List[BaseException]] = {}
        self.delay = 0.0
        self.down = set()
        self.calls: List[Any] = []
        self._lock = threading.Lock()

    def resolve(self, identifier, network):
        with self._lock:
            self.calls.append((identifier.raw, network))
            pending = self.errors.get(identifier.raw)
            error = pending.pop(0) if pending else None
        if self.delay:
            time.sleep(self.delay)
        if error is not None:
            raise error
        return self.files.get(identifier.raw)

    def probe(self, network):
        if network in self.down:
            raise ConnectionError(f"connection refused ({network})")
        return {"number": "0x1"}

    def attempts(self, uri: str) -> int:
        return sum(1 for raw, _ in self.calls if raw == uri)


@pytest.fixture
def resolver() -> FakeResolver:
    return FakeResolver({OUTPOINT_URI: HELLO, TYPEID_URI: IMAGE})


@pytest.fixture
def service(resolver) -> CKBFSService:
    svc = CKBFSService(
        resolver=resolver,
        default_network="testnet",
        timeout_ms=500,
        retry_attempts=3,
        retry_delay_ms=0,
    )
    svc.sleeps = []
    svc._sleep = svc.sleeps.append
    return svc


@pytest.fixture
def client(service):
    app.dependency_overrides[get_ckbfs_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
