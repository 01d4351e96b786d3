# -*- coding: utf-8 -*-
"""
identifier.py

Parsing degli identificativi CKBFS. Forme accettate (hex case-insensitive):

  ckbfs://{tx_hash}i{output_index}   -> OutPointRef
  ckbfs://{type_id}                  -> TypeIdRef
  0x{type_id}                        -> TypeIdRef
  {type_id}                          -> TypeIdRef

dove tx_hash / type_id sono 64 caratteri esadecimali. Qualsiasi altra stringa
produce CKBFSError(INVALID_URI) prima di qualsiasi decomposizione.
"""
import re
from typing import Any, Dict, List

from ckbfs_resolver.models import Identifier, OutPointRef, TypeIdRef

from app.errors import CKBFSError, ErrorCode

OUTPOINT_URI_RE = re.compile(r"ckbfs://(?P<hash>[a-fA-F0-9]{64})i(?P<index>[0-9]+)")
TYPEID_URI_RE = re.compile(r"ckbfs://(?P<hash>[a-fA-F0-9]{64})")
TYPEID_HEX_RE = re.compile(r"0x(?P<hash>[a-fA-F0-9]{64})")
TYPEID_BARE_RE = re.compile(r"(?P<hash>[a-fA-F0-9]{64})")

EXPECTED_FORMAT = (
    "L'URI deve essere in uno dei formati CKBFS: ckbfs://{tx_hash}i{index}, "
    "ckbfs://{type_id}, 0x{type_id} oppure {type_id} (64 caratteri esadecimali)"
)

SUPPORTED_URI_FORMATS: List[Dict[str, Any]] = [
    {
        "format": "ckbfs://{tx_hash}i{output_index}",
        "description": "OutPoint: hash della transazione e indice dell'output",
        "example": "ckbfs://431c9d668c1815d26eb4f7ac6256eb350ab351474daea8d588400146ab228780i0",
    },
    {
        "format": "ckbfs://{type_id}",
        "description": "TypeID CKBFS con schema ckbfs://",
        "example": "ckbfs://bce89252cece632ef819943bed9cd0e2576f8ce26f9f02075b621b1c9a28056a",
    },
    {
        "format": "0x{type_id}",
        "description": "TypeID esadecimale con prefisso 0x",
        "example": "0xbce89252cece632ef819943bed9cd0e2576f8ce26f9f02075b621b1c9a28056a",
    },
    {
        "format": "{type_id}",
        "description": "TypeID esadecimale senza prefisso",
        "example": "bce89252cece632ef819943bed9cd0e2576f8ce26f9f02075b621b1c9a28056a",
    },
]


def _hex(value: str) -> str:
    return "0x" + value.lower()


def parse_uri(uri: str) -> Identifier:
    if not isinstance(uri, str) or not uri:
        raise CKBFSError(ErrorCode.INVALID_URI, f"Formato URI CKBFS non valido: {uri!r}", EXPECTED_FORMAT)

    match = OUTPOINT_URI_RE.fullmatch(uri)
    if match:
        return OutPointRef(tx_hash=_hex(match.group("hash")), index=int(match.group("index")), raw=uri)

    for pattern in (TYPEID_URI_RE, TYPEID_HEX_RE, TYPEID_BARE_RE):
        match = pattern.fullmatch(uri)
        if match:
            return TypeIdRef(type_id=_hex(match.group("hash")), raw=uri)

    raise CKBFSError(ErrorCode.INVALID_URI, f"Formato URI CKBFS non valido: {uri}", EXPECTED_FORMAT)
