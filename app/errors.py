# -*- coding: utf-8 -*-
"""
errors.py

Tassonomia unica degli errori dell'API CKBFS.

Tutti gli errori di dominio sono CKBFSError con un `code` (ErrorCode), un
messaggio leggibile e un dettaglio opzionale. Lo status HTTP si ricava sempre
dalla tabella HTTP_STATUS_BY_CODE, mai dal testo del messaggio.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    # Validazione input
    INVALID_URI = "INVALID_URI"
    INVALID_NETWORK = "INVALID_NETWORK"
    INVALID_FORMAT = "INVALID_FORMAT"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"

    # CKBFS / blockchain
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    CKBFS_DECODE_ERROR = "CKBFS_DECODE_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    BLOCKCHAIN_ERROR = "BLOCKCHAIN_ERROR"

    # Server
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"

    # Routing
    NOT_FOUND = "NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"


HTTP_STATUS_BY_CODE: Dict[ErrorCode, int] = {
    ErrorCode.INVALID_URI: 400,
    ErrorCode.INVALID_NETWORK: 400,
    ErrorCode.INVALID_FORMAT: 400,
    ErrorCode.MISSING_REQUIRED_FIELD: 400,
    ErrorCode.FILE_NOT_FOUND: 404,
    ErrorCode.CKBFS_DECODE_ERROR: 502,
    ErrorCode.NETWORK_ERROR: 502,
    ErrorCode.TIMEOUT_ERROR: 504,
    ErrorCode.BLOCKCHAIN_ERROR: 500,
    ErrorCode.SERVICE_UNAVAILABLE: 503,
    ErrorCode.INTERNAL_SERVER_ERROR: 500,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.METHOD_NOT_ALLOWED: 405,
}

ERROR_DESCRIPTIONS: Dict[ErrorCode, str] = {
    ErrorCode.INVALID_URI: "Formato URI CKBFS non valido",
    ErrorCode.INVALID_NETWORK: "Parametro network non valido",
    ErrorCode.INVALID_FORMAT: "Parametro format non valido",
    ErrorCode.MISSING_REQUIRED_FIELD: "Parametro obbligatorio mancante o non valido",
    ErrorCode.FILE_NOT_FOUND: "File non trovato sulla blockchain",
    ErrorCode.CKBFS_DECODE_ERROR: "Impossibile decodificare i dati CKBFS",
    ErrorCode.NETWORK_ERROR: "Errore di comunicazione di rete",
    ErrorCode.TIMEOUT_ERROR: "Timeout della richiesta",
    ErrorCode.BLOCKCHAIN_ERROR: "Errore nell'interrogazione della blockchain",
    ErrorCode.SERVICE_UNAVAILABLE: "Servizio temporaneamente non disponibile",
    ErrorCode.INTERNAL_SERVER_ERROR: "Errore interno del server",
}

_KNOWN_CODES = frozenset(code.value for code in ErrorCode)

# Ultima rete di sicurezza per eccezioni inattese: l'ordine conta.
_FALLBACK_SUBSTRINGS = (
    (("not found",), ErrorCode.FILE_NOT_FOUND),
    (("timeout", "timed out"), ErrorCode.TIMEOUT_ERROR),
    (("network", "connection", "econnrefused", "enotfound"), ErrorCode.NETWORK_ERROR),
    (("decode", "parse"), ErrorCode.CKBFS_DECODE_ERROR),
)


class CKBFSError(Exception):
    """Errore strutturato `{code, message, details?}` propagato fino al bordo HTTP."""

    def __init__(self, code: ErrorCode, message: str, details: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = ErrorCode(code)
        self.message = message
        self.details = details

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_CODE.get(self.code, 500)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload

    def __repr__(self) -> str:
        return f"CKBFSError(code={self.code.value!r}, message={self.message!r})"


def classify_exception(
    exc: BaseException,
    default: ErrorCode = ErrorCode.INTERNAL_SERVER_ERROR,
    message: Optional[str] = None,
) -> CKBFSError:
    """
    Converte un'eccezione qualsiasi in CKBFSError.

    1. CKBFSError passa invariato.
    2. Un attributo `code` appartenente alla tassonomia (es. ApiError dell'SDK) vince.
    3. Solo come ripiego si cercano sottostringhe nel messaggio.
    4. Altrimenti `default`.
    """
    if isinstance(exc, CKBFSError):
        return exc

    text = str(exc) or exc.__class__.__name__
    details = getattr(exc, "details", None) or text

    code = getattr(exc, "code", None)
    if isinstance(code, str) and code in _KNOWN_CODES:
        return CKBFSError(ErrorCode(code), message or text, details)

    lowered = text.lower()
    for needles, fallback_code in _FALLBACK_SUBSTRINGS:
        if any(needle in lowered for needle in needles):
            return CKBFSError(fallback_code, message or text, details)

    return CKBFSError(default, message or text, details)
