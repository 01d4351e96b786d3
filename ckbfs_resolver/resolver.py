# -*- coding: utf-8 -*-
"""
resolver.py
-----------
Punto di contatto unico con la risoluzione on-chain.

L'API non conosce il formato binario CKBFS né i client RPC: chiama soltanto
`Resolver.resolve(identifier, network)` e `Resolver.probe(network)`.
GatewayResolver è l'implementazione di produzione, costruita sopra
CKBFSGatewayClient; nei test viene sostituita da un resolver finto.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional

from ckbfs_resolver.models import BackLink, Identifier, RetrievedFile
from ckbfs_resolver.sdk.ckbfs_sdk import ApiError, CKBFSGatewayClient

logger = logging.getLogger("ckbfs.resolver")


class Resolver(ABC):
    """Interfaccia minima verso il file-system on-chain."""

    @abstractmethod
    def resolve(self, identifier: Identifier, network: str) -> Optional[RetrievedFile]:
        """Restituisce il file identificato, oppure None se non esiste."""

    @abstractmethod
    def probe(self, network: str) -> Dict[str, Any]:
        """Interroga la rete (tip header); solleva un'eccezione se non raggiungibile."""


def _parse_back_links(raw: Any) -> Optional[List[BackLink]]:
    if not raw:
        return None
    links = []
    for item in raw:
        tx_hash = item.get("txHash") or item.get("tx_hash")
        index = item.get("index")
        if tx_hash is None or index is None:
            raise ApiError(f"Back-link malformato: {item}", code="CKBFS_DECODE_ERROR")
        links.append(BackLink(tx_hash=tx_hash, index=int(index)))
    return links


class GatewayResolver(Resolver):
    """
    Risolve i file tramite un gateway CKBFS upstream:
      1) metadata JSON (filename, contentType, size, checksum, backLinks)
      2) contenuto grezzo (format=raw)
    """

    def __init__(
        self,
        base_url: str,
        rpc_urls: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = 60.0,
        client: Optional[CKBFSGatewayClient] = None,
    ) -> None:
        self.client = client or CKBFSGatewayClient(base_url=base_url, rpc_urls=rpc_urls, timeout=timeout)

    def resolve(self, identifier: Identifier, network: str) -> Optional[RetrievedFile]:
        uri = identifier.raw
        meta = self.client.get_metadata(uri, network)
        content, headers = self.client.get_raw(uri, network)

        content_type = meta.get("contentType") or headers.get("content-type") or "application/octet-stream"
        filename = meta.get("filename") or headers.get("x-ckbfs-filename") or ""
        try:
            size = int(meta.get("size", len(content)))
            checksum = meta.get("checksum")
            checksum = int(checksum) if checksum is not None else None
        except (TypeError, ValueError) as e:
            raise ApiError(f"Metadati non validi per {uri}: {e}", code="CKBFS_DECODE_ERROR") from e

        logger.debug("Gateway ha risolto %s su %s (%d byte)", uri, network, len(content))
        return RetrievedFile(
            filename=filename,
            content_type=content_type,
            size=size,
            content=content,
            checksum=checksum,
            back_links=_parse_back_links(meta.get("backLinks")),
        )

    def probe(self, network: str) -> Dict[str, Any]:
        header = self.client.get_tip_header(network)
        if not header:
            raise ApiError(f"Tip header vuoto dalla rete {network}", code="NETWORK_ERROR")
        return header
