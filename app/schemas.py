from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional

MAX_BATCH_URIS = 10


# =============================================================================
# BUSTA DI RISPOSTA COMUNE
# =============================================================================
class ErrorResponse(BaseModel):
    """
    Errore restituito dall'API.

    **Campi**:
    - **code**: Codice macchina (es. INVALID_URI, FILE_NOT_FOUND).
    - **message**: Messaggio leggibile.
    - **details**: Dettaglio diagnostico opzionale.
    """
    code: str = Field(..., description="Codice di errore della tassonomia CKBFS.")
    message: str = Field(..., description="Descrizione leggibile dell'errore.")
    details: Optional[str] = Field(None, description="Dettaglio diagnostico opzionale.")


class ApiResponse(BaseModel):
    """
    Busta uniforme di tutte le risposte JSON (tranne i formati raw e compatible).

    **Campi**:
    - **success**: `true` se l'operazione è andata a buon fine.
    - **data**: Payload in caso di successo.
    - **error**: Errore in caso di fallimento.
    - **timestamp**: Data e ora della risposta (ISO 8601, UTC).
    - **requestId**: Identificativo di correlazione della richiesta.
    """
    success: bool = Field(..., description="Esito dell'operazione.")
    data: Optional[Any] = Field(None, description="Payload della risposta.")
    error: Optional[ErrorResponse] = Field(None, description="Errore, solo se success=false.")
    timestamp: str = Field(..., description="Timestamp ISO 8601 della risposta.")
    requestId: Optional[str] = Field(None, description="Identificativo di correlazione della richiesta.")


# =============================================================================
# FILE CKBFS
# =============================================================================
class ParsedIdentifier(BaseModel):
    type: Literal["outPoint", "typeId"] = Field(..., description="Variante dell'identificativo.")
    txHash: Optional[str] = Field(None, description="Hash della transazione (solo outPoint), con prefisso 0x.")
    index: Optional[int] = Field(None, description="Indice dell'output (solo outPoint).")
    typeId: Optional[str] = Field(None, description="Type ID (solo typeId), con prefisso 0x.")
    raw: str = Field(..., description="URI originale così come ricevuto.")


class BackLinkModel(BaseModel):
    txHash: str
    index: int


class FileMetadata(BaseModel):
    network: str
    protocol: str
    version: str


class FileResponse(BaseModel):
    """
    Risposta JSON di un file CKBFS.

    **Campi**:
    - **content**: Testo UTF-8 per i file testuali, base64 per i binari (assente se includeContent=false).
    - **encoding**: `utf8` oppure `base64`.
    - **checksum**, **backLinks**, **metadata**: assenti se includeMetadata=false.
    """
    uri: str
    filename: str
    contentType: str
    size: int
    parsedId: ParsedIdentifier
    content: Optional[str] = None
    encoding: Optional[Literal["utf8", "base64"]] = None
    checksum: Optional[int] = None
    backLinks: Optional[List[BackLinkModel]] = None
    metadata: Optional[FileMetadata] = None


class CompatibleFileResponse(BaseModel):
    """Formato legacy senza busta: contenuto sempre in esadecimale."""
    content_type: str = Field(..., description="MIME type dichiarato del file.")
    content: str = Field(..., description="Contenuto del file codificato in hex.")
    filename: str = Field(..., description="Nome originale del file.")


class ValidationResult(BaseModel):
    uri: str
    valid: bool
    network: str
    parsedId: Optional[ParsedIdentifier] = None
    checkedAt: str


class ParseResult(BaseModel):
    uri: str
    parsed: ParsedIdentifier
    valid: bool = True
    parsedAt: str


# =============================================================================
# BATCH
# =============================================================================
class BatchRequest(BaseModel):
    """
    Richiesta di recupero multiplo.

    **Campi**:
    - **uris**: Lista di URI CKBFS (da 1 a 10).
    - **network**: `mainnet` o `testnet` (default da configurazione).
    - **format**: Solo `json` è ammesso per il batch.
    - **includeContent**: Include il contenuto dei file (default true).
    - **includeMetadata**: Include checksum, backLinks e metadata (default true).
    """
    uris: List[str] = Field(
        ...,
        min_length=1,
        max_length=MAX_BATCH_URIS,
        description="Lista di URI CKBFS (massimo 10 per richiesta)."
    )
    network: Optional[str] = Field(None, description="Rete CKB da interrogare.")
    format: Optional[str] = Field(None, description="Formato di risposta: solo 'json' per il batch.")
    includeContent: bool = Field(True, description="Include il contenuto dei file.")
    includeMetadata: bool = Field(True, description="Include i metadati dei file.")


class BatchItemError(BaseModel):
    uri: str
    error: str
    code: str


class BatchResult(BaseModel):
    total: int
    successful: int
    failed: int
    results: List[Dict[str, Any]]
    processedAt: str


# =============================================================================
# SALUTE
# =============================================================================
class HealthStatus(BaseModel):
    status: Literal["healthy", "unhealthy"]
    networks: Dict[str, Literal["up", "down"]]
    lastCheck: str
