# -*- coding: utf-8 -*-
"""
models.py
---------
Strutture dati condivise tra il resolver esterno e l'API:

  - OutPointRef / TypeIdRef: identificativo CKBFS già decomposto
  - BackLink: riferimento al chunk precedente (passato così com'è)
  - RetrievedFile: risultato di una risoluzione andata a buon fine

Tutte immutabili: vengono costruite una volta per richiesta e poi scartate.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union


@dataclass(frozen=True)
class OutPointRef:
    """Riferimento (tx_hash, index) a un output di transazione."""
    tx_hash: str
    index: int
    raw: str

    type = "outPoint"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "txHash": self.tx_hash, "index": self.index, "raw": self.raw}


@dataclass(frozen=True)
class TypeIdRef:
    """Riferimento tramite type-id, indipendente dalla transazione."""
    type_id: str
    raw: str

    type = "typeId"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "typeId": self.type_id, "raw": self.raw}


Identifier = Union[OutPointRef, TypeIdRef]


@dataclass(frozen=True)
class BackLink:
    tx_hash: str
    index: int

    def to_dict(self) -> Dict[str, Any]:
        return {"txHash": self.tx_hash, "index": self.index}


@dataclass(frozen=True)
class RetrievedFile:
    filename: str
    content_type: str
    size: int
    content: bytes
    checksum: Optional[int] = None
    back_links: Optional[List[BackLink]] = None
