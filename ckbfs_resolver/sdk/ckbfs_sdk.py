# -*- coding: utf-8 -*-
"""
CKBFS Gateway Python SDK
========================

Client minimale per due servizi esterni:

  - un gateway CKBFS upstream (stesso contratto HTTP di questa API) che esegue
    la decodifica on-chain: `/ckbfs/metadata` (JSON) e `/ckbfs?format=raw` (byte)
  - i nodi CKB via JSON-RPC, usati solo per la sonda `get_tip_header`

Ogni metodo restituisce il payload decodificato oppure solleva ApiError.
ApiError porta con sé `status_code` e `code`: il codice di errore del gateway
upstream se presente, altrimenti NETWORK_ERROR / TIMEOUT_ERROR per i problemi
di connessione.

Uso tipico:
-----------
from ckbfs_resolver.sdk.ckbfs_sdk import CKBFSGatewayClient

client = CKBFSGatewayClient(
    base_url="http://127.0.0.1:6759/api/v1",
    rpc_urls={"mainnet": "https://mainnet.ckb.dev/rpc", "testnet": "https://testnet.ckb.dev/rpc"},
)
meta = client.get_metadata("ckbfs://<tx_hash>i0", "testnet")
body, headers = client.get_raw("ckbfs://<tx_hash>i0", "testnet")
"""

from __future__ import annotations

import itertools
import threading
from typing import Any, Dict, Mapping, Optional, Tuple

import requests


class ApiError(RuntimeError):
    """Errore generico per chiamate verso il gateway o il nodo CKB."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.details = details


class CKBFSGatewayClient:
    def __init__(
        self,
        base_url: str,
        rpc_urls: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = 60.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.rpc_urls = dict(rpc_urls or {})
        self.timeout = timeout
        self._session = session
        self._local = threading.local()
        self._rpc_ids = itertools.count(1)

    @property
    def session(self) -> requests.Session:
        """
        Sessione HTTP del thread corrente: una per thread, creata al primo uso.
        Una sessione passata al costruttore viene usata così com'è da tutti i thread.
        """
        if self._session is not None:
            return self._session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session

    # --------------------------
    # Helpers
    # --------------------------
    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            return self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            raise ApiError(f"Timeout verso {url}: {e}", code="TIMEOUT_ERROR") from e
        except requests.RequestException as e:
            raise ApiError(f"Errore di connessione di rete verso {url}: {e}", code="NETWORK_ERROR") from e

    @staticmethod
    def _raise_for_envelope(resp: requests.Response, path: str) -> None:
        if resp.ok:
            return
        code = None
        message = f"HTTP {resp.status_code} su {path}"
        details = resp.text
        try:
            body = resp.json()
        except ValueError:
            body = {}
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict):
            code = error.get("code")
            message = error.get("message") or message
            details = error.get("details") or details
        if code is None and resp.status_code == 404:
            code = "FILE_NOT_FOUND"
        raise ApiError(message, status_code=resp.status_code, code=code, details=details)

    # --------------------------
    # Gateway CKBFS
    # --------------------------
    def get_metadata(self, uri: str, network: str) -> Dict[str, Any]:
        path = "/ckbfs/metadata"
        resp = self._request("GET", self._url(path), params={"uri": uri, "network": network})
        self._raise_for_envelope(resp, path)
        try:
            payload = resp.json()
        except ValueError as e:
            raise ApiError(f"Impossibile decodificare JSON da {path}: {resp.text}", code="CKBFS_DECODE_ERROR") from e
        data = payload.get("data") if isinstance(payload, dict) else None
        if not data:
            raise ApiError(f"Risposta senza dati da {path}", status_code=resp.status_code, code="FILE_NOT_FOUND")
        return data

    def get_raw(self, uri: str, network: str) -> Tuple[bytes, Dict[str, str]]:
        path = "/ckbfs"
        resp = self._request(
            "GET", self._url(path), params={"uri": uri, "network": network, "format": "raw"}
        )
        self._raise_for_envelope(resp, path)
        return resp.content, {k.lower(): v for k, v in resp.headers.items()}

    # --------------------------
    # Nodo CKB (JSON-RPC)
    # --------------------------
    def rpc_call(self, network: str, method: str, params: Optional[list] = None) -> Any:
        url = self.rpc_urls.get(network)
        if not url:
            raise ApiError(f"Nessun endpoint RPC configurato per la rete '{network}'", code="INVALID_NETWORK")

        payload = {"jsonrpc": "2.0", "id": next(self._rpc_ids), "method": method, "params": params or []}
        resp = self._request("POST", url, json=payload)
        if not resp.ok:
            raise ApiError(f"HTTP {resp.status_code} su {method}: {resp.text}", status_code=resp.status_code,
                           code="NETWORK_ERROR")
        try:
            body = resp.json()
        except ValueError as e:
            raise ApiError(f"Impossibile decodificare JSON-RPC da {url}: {resp.text}", code="BLOCKCHAIN_ERROR") from e

        if body.get("error"):
            raise ApiError(f"Errore RPC {method}: {body['error']}", code="BLOCKCHAIN_ERROR")
        return body.get("result")

    def get_tip_header(self, network: str) -> Dict[str, Any]:
        return self.rpc_call(network, "get_tip_header")
