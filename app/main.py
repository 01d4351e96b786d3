import json
import logging
import time
from typing import Any, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from ckbfs_resolver.models import RetrievedFile
from ckbfs_resolver.resolver import GatewayResolver

from app.config import NETWORKS, get_settings
from app.errors import ERROR_DESCRIPTIONS, CKBFSError, ErrorCode, classify_exception
from app.identifier import SUPPORTED_URI_FORMATS
from app.schemas import (
    MAX_BATCH_URIS,
    ApiResponse, ErrorResponse, FileResponse, CompatibleFileResponse,
    ValidationResult, ParseResult, BatchRequest, BatchItemError, BatchResult, HealthStatus,
)
from app.service import CKBFSService
from app.utils import configure_logging, generate_request_id, header_safe, request_id_var, utc_now_iso

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger("ckbfs.api")

API_BASE = settings.api_base
RESPONSE_FORMATS = ("json", "raw")
_STARTED_AT = time.monotonic()


app = FastAPI(
    title="CKBFS Gateway API",
    description="""
API REST per la decodifica degli URI CKBFS e il recupero dei file salvati sulla blockchain CKB.

Il recupero vero e proprio (lettura della catena, ricostruzione dei back-link, verifica del checksum)
è delegato a un resolver esterno; questa API valida gli URI, gestisce timeout e retry e restituisce
il file in tre formati:

- **json**: busta `{success, data, timestamp, requestId}` con contenuto UTF-8 (file testuali) o base64 (binari)
- **raw**: i byte del file con gli header `X-CKBFS-*`
- **compatible**: oggetto legacy `{content_type, content, filename}` con contenuto in esadecimale

Formati URI accettati: `ckbfs://{tx_hash}i{index}`, `ckbfs://{type_id}`, `0x{type_id}`, `{type_id}`.
    """,
    version=settings.version,
)

# Configurazione CORS (origini, metodi e header da variabili d'ambiente)
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=False,
    allow_methods=list(settings.cors_methods),
    allow_headers=list(settings.cors_headers),
)

# Header di sicurezza (disattivabili con HELMET_ENABLED=false)
SECURITY_HEADERS = {
    "Content-Security-Policy": (
        "default-src 'self'; style-src 'self' 'unsafe-inline'; script-src 'self'; img-src 'self' data: https:"
    ),
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Permitted-Cross-Domain-Policies": "none",
}


async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


if settings.helmet_enabled:
    app.middleware("http")(security_headers_middleware)


# ----------------------------------------------------------------------------
# SERVIZIO CKBFS (singleton, sostituibile nei test con dependency_overrides)
# ----------------------------------------------------------------------------
_SERVICE_SINGLETON: Optional[CKBFSService] = None


def get_ckbfs_service() -> CKBFSService:
    global _SERVICE_SINGLETON
    if _SERVICE_SINGLETON is not None:
        return _SERVICE_SINGLETON

    resolver = GatewayResolver(
        base_url=settings.resolver_url,
        rpc_urls=settings.rpc_urls,
        timeout=settings.timeout_ms / 1000,
    )
    _SERVICE_SINGLETON = CKBFSService(
        resolver=resolver,
        default_network=settings.network,
        timeout_ms=settings.timeout_ms,
        retry_attempts=settings.retry_attempts,
        retry_delay_ms=settings.retry_delay_ms,
        protocol_version=settings.protocol_version,
    )
    return _SERVICE_SINGLETON


# ----------------------------------------------------------------------------
# BUSTA DI RISPOSTA E REQUEST ID
# ----------------------------------------------------------------------------
def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def envelope(request: Request, data: Any = None, status_code: int = 200) -> JSONResponse:
    body = ApiResponse(success=True, data=data, timestamp=utc_now_iso(), requestId=_request_id(request))
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def error_response(
    request: Request,
    error: CKBFSError,
    status_code: Optional[int] = None,
    data: Any = None,
) -> JSONResponse:
    body = ApiResponse(
        success=False,
        data=data,
        error=ErrorResponse(**error.to_dict()),
        timestamp=utc_now_iso(),
        requestId=_request_id(request),
    )
    response = JSONResponse(status_code=status_code or error.status_code, content=body.model_dump(exclude_none=True))
    if _request_id(request):
        response.headers["X-Request-ID"] = _request_id(request)
    return response


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = generate_request_id()
    request.state.request_id = request_id
    token = request_id_var.set(request_id)
    start = time.monotonic()
    try:
        client = request.client.host if request.client else "unknown"
        logger.info("%s %s da %s", request.method, request.url.path, client)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        logger.info("%s %s -> %d in %d ms", request.method, request.url.path, response.status_code,
                    int((time.monotonic() - start) * 1000))
        return response
    finally:
        request_id_var.reset(token)


# ----------------------------------------------------------------------------
# GESTIONE ERRORI
# ----------------------------------------------------------------------------
@app.exception_handler(CKBFSError)
async def ckbfs_error_handler(request: Request, exc: CKBFSError):
    log = logger.warning if exc.status_code < 500 else logger.error
    log("Operazione CKBFS fallita: code=%s message=%s details=%s", exc.code.value, exc.message, exc.details)
    return error_response(request, exc)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ()) if part not in ("query", "body"))
        problems.append(f"{field or 'body'}: {err.get('msg')}")
    error = CKBFSError(ErrorCode.MISSING_REQUIRED_FIELD, "Validazione dei parametri fallita", "; ".join(problems))
    logger.warning("Validazione fallita su %s: %s", request.url.path, error.details)
    return error_response(request, error)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        error = CKBFSError(ErrorCode.NOT_FOUND, f"Route {request.method} {request.url.path} non trovata",
                           "L'endpoint richiesto non esiste")
    elif exc.status_code == 405:
        error = CKBFSError(ErrorCode.METHOD_NOT_ALLOWED,
                           f"Metodo {request.method} non ammesso su {request.url.path}")
    else:
        error = classify_exception(Exception(str(exc.detail)))
    return error_response(request, error, status_code=exc.status_code)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    classified = classify_exception(exc)
    logger.exception("Errore inatteso su %s %s", request.method, request.url.path)
    error = CKBFSError(
        classified.code,
        ERROR_DESCRIPTIONS.get(classified.code, "Errore interno del server"),
        str(exc) if settings.debug else None,
    )
    return error_response(request, error)


# ----------------------------------------------------------------------------
# FUNZIONI AUSILIARIE
# ----------------------------------------------------------------------------
def validate_format(response_format: Optional[str], allowed=RESPONSE_FORMATS) -> str:
    candidate = response_format or "json"
    if candidate not in allowed:
        raise CKBFSError(
            ErrorCode.INVALID_FORMAT,
            f"Formato non valido: {candidate}. Deve essere uno tra: {', '.join(allowed)}",
        )
    return candidate


def raw_file_response(uri: str, network: str, retrieved: RetrievedFile) -> Response:
    filename = header_safe(retrieved.filename)
    headers = {
        "Content-Type": retrieved.content_type or "application/octet-stream",
        "Content-Disposition": f'inline; filename="{filename}"',
        "X-CKBFS-URI": header_safe(uri),
        "X-CKBFS-Network": network,
        "X-CKBFS-Filename": filename,
        "X-CKBFS-Size": str(retrieved.size),
    }
    return Response(content=bytes(retrieved.content), headers=headers)


_URI_DESCRIPTION = "URI CKBFS: ckbfs://{tx_hash}i{index}, ckbfs://{type_id}, 0x{type_id} oppure {type_id}"
_NETWORK_DESCRIPTION = "Rete CKB da interrogare: mainnet o testnet (default da configurazione)"


# ----------------------------------------------------------------------------
# ENDPOINT GENERALI
# ----------------------------------------------------------------------------
@app.get("/", include_in_schema=False)
def root():
    return RedirectResponse(url=f"{API_BASE}/info")


@app.get("/health", tags=["Health Check"])
def health(request: Request):
    """
    **Health Check del processo**

    Verifica che il servizio sia attivo (non interroga la blockchain: per quello c'è `/ckbfs/health`).
    """
    now = utc_now_iso()
    return envelope(request, {
        "status": "healthy",
        "uptime": round(time.monotonic() - _STARTED_AT, 3),
        "timestamp": now,
        "version": settings.version,
        "network": settings.network,
        "services": [{"name": "ckbfs-api", "status": "up", "lastCheck": now}],
    })


@app.get(f"{API_BASE}/info", tags=["Info"])
def api_info(request: Request):
    """Informazioni sul servizio, formati supportati e reti disponibili."""
    return envelope(request, {
        "name": "CKBFS Gateway API",
        "version": settings.version,
        "description": "API REST per la decodifica degli URI CKBFS e il recupero dei file",
        "endpoints": {
            "health": "/health",
            "ckbfs": f"{API_BASE}/ckbfs",
            "info": f"{API_BASE}/info",
            "docs": f"{API_BASE}/docs",
        },
        "supportedFormats": list(RESPONSE_FORMATS),
        "supportedNetworks": list(NETWORKS),
        "uriFormats": [item["format"] for item in SUPPORTED_URI_FORMATS],
    })


@app.get(f"{API_BASE}/docs", tags=["Info"])
def api_docs(request: Request):
    """Catalogo leggibile da macchina di endpoint, formati URI, codici di errore e limiti."""
    base = f"{API_BASE}/ckbfs"
    return envelope(request, {
        "name": "CKBFS Gateway API",
        "version": settings.version,
        "baseUrl": f"{str(request.base_url).rstrip('/')}{API_BASE}",
        "endpoints": [
            {"method": "GET", "path": base,
             "description": "Recupera un file CKBFS (json o raw)",
             "parameters": ["uri", "network", "format", "includeContent", "includeMetadata"]},
            {"method": "GET", "path": f"{base}/metadata",
             "description": "Metadati del file senza contenuto", "parameters": ["uri", "network"]},
            {"method": "GET", "path": f"{base}/compatible",
             "description": "Formato legacy con contenuto esadecimale", "parameters": ["uri", "network"]},
            {"method": "GET", "path": f"{base}/validate",
             "description": "Verifica che l'URI sia valido e risolvibile", "parameters": ["uri", "network"]},
            {"method": "GET", "path": f"{base}/parse",
             "description": "Interpreta l'URI senza interrogare la blockchain", "parameters": ["uri"]},
            {"method": "POST", "path": f"{base}/batch",
             "description": "Recupero multiplo (solo json)",
             "parameters": ["uris", "network", "format", "includeContent", "includeMetadata"]},
            {"method": "GET", "path": f"{base}/health",
             "description": "Raggiungibilità delle reti CKB", "parameters": []},
        ],
        "supportedURIFormats": SUPPORTED_URI_FORMATS,
        "errorCodes": {code.value: description for code, description in ERROR_DESCRIPTIONS.items()},
        "limits": {
            "batchSize": MAX_BATCH_URIS,
            "timeoutMs": settings.timeout_ms,
            "retryAttempts": settings.retry_attempts,
        },
    })


# ----------------------------------------------------------------------------
# ENDPOINT CKBFS
# ----------------------------------------------------------------------------
@app.get(f"{API_BASE}/ckbfs", tags=["CKBFS"])
def get_file_by_uri(
    request: Request,
    uri: str = Query(..., description=_URI_DESCRIPTION),
    network: Optional[str] = Query(None, description=_NETWORK_DESCRIPTION),
    response_format: Optional[str] = Query("json", alias="format", description="json oppure raw"),
    include_content: bool = Query(True, alias="includeContent", description="Include il contenuto del file"),
    include_metadata: bool = Query(True, alias="includeMetadata", description="Include checksum, backLinks e metadata"),
    service: CKBFSService = Depends(get_ckbfs_service),
):
    """
    **Recupero file CKBFS**

    - `format=json` (default): busta standard; `data.content` è UTF-8 per i file testuali
      e base64 per i binari (`data.encoding` indica quale).
    - `format=raw`: corpo = byte del file, con `Content-Type`, `Content-Disposition` e gli header
      `X-CKBFS-URI`, `X-CKBFS-Network`, `X-CKBFS-Filename`, `X-CKBFS-Size`.

    **Esempio**:
    `GET /api/v1/ckbfs?uri=ckbfs://431c9d668c1815d26eb4f7ac6256eb350ab351474daea8d588400146ab228780i0&network=testnet`
    """
    response_format = validate_format(response_format)

    if response_format == "raw":
        retrieved, resolved_network = service.get_raw_file_content(uri, network)
        logger.info("Risposta raw per %s: %s (%d byte)", uri, retrieved.filename, retrieved.size)
        return raw_file_response(uri, resolved_network, retrieved)

    file_data = service.get_file_content(uri, network, include_content, include_metadata)
    return envelope(request, FileResponse(**file_data).model_dump(exclude_none=True))


@app.get(f"{API_BASE}/ckbfs/metadata", tags=["CKBFS"])
def get_file_metadata(
    request: Request,
    uri: str = Query(..., description=_URI_DESCRIPTION),
    network: Optional[str] = Query(None, description=_NETWORK_DESCRIPTION),
    service: CKBFSService = Depends(get_ckbfs_service),
):
    """Metadati del file (nome, MIME type, dimensione, checksum, backLinks) senza contenuto."""
    metadata = service.get_file_metadata(uri, network)
    return envelope(request, FileResponse(**metadata).model_dump(exclude_none=True))


@app.get(f"{API_BASE}/ckbfs/compatible", tags=["CKBFS"], response_model=CompatibleFileResponse)
def get_file_compatible(
    uri: str = Query(..., description=_URI_DESCRIPTION),
    network: Optional[str] = Query(None, description=_NETWORK_DESCRIPTION),
    service: CKBFSService = Depends(get_ckbfs_service),
):
    """
    **Formato compatibile (legacy)**

    Nessuna busta: `{content_type, content, filename}` con `content` sempre in esadecimale,
    indipendentemente dal MIME type.

    **Esempio di risposta**:
    ```json
    {"content_type": "text/plain", "content": "48656c6c6f", "filename": "hello.txt"}
    ```
    """
    return CompatibleFileResponse(**service.get_compatible_file(uri, network))


@app.get(f"{API_BASE}/ckbfs/validate", tags=["CKBFS"])
def validate_uri(
    request: Request,
    uri: str = Query(..., description=_URI_DESCRIPTION),
    network: Optional[str] = Query(None, description=_NETWORK_DESCRIPTION),
    service: CKBFSService = Depends(get_ckbfs_service),
):
    """
    Verifica che l'URI sia risolvibile sulla rete indicata.

    Un URI malformato è rifiutato con 400 INVALID_URI; `valid=false` indica un URI ben formato
    che non corrisponde a nessun file.
    """
    resolved_network = service.validate_network(network)
    parsed = service.parse_uri(uri)
    is_valid = service.validate_uri(uri, resolved_network)

    result = ValidationResult(
        uri=uri,
        valid=is_valid,
        network=resolved_network,
        parsedId=parsed.to_dict(),
        checkedAt=utc_now_iso(),
    )
    return envelope(request, result.model_dump(exclude_none=True))


@app.get(f"{API_BASE}/ckbfs/parse", tags=["CKBFS"])
def parse_uri(
    request: Request,
    uri: str = Query(..., description=_URI_DESCRIPTION),
    service: CKBFSService = Depends(get_ckbfs_service),
):
    """Interpreta l'URI e ne restituisce la struttura, senza interrogare la blockchain."""
    parsed = service.parse_uri(uri)
    result = ParseResult(uri=uri, parsed=parsed.to_dict(), valid=True, parsedAt=utc_now_iso())
    return envelope(request, result.model_dump(exclude_none=True))


@app.post(f"{API_BASE}/ckbfs/batch", tags=["CKBFS"])
def batch_get_files(
    request: Request,
    body: BatchRequest,
    service: CKBFSService = Depends(get_ckbfs_service),
):
    """
    **Recupero multiplo**

    Recupera fino a 10 URI in parallelo. Un errore su un elemento non interrompe il batch:
    l'elemento corrispondente diventa `{uri, error, code}`. L'ordine dei risultati è quello della richiesta.

    **Esempio di richiesta**:
    ```json
    {
      "uris": [
        "ckbfs://431c9d668c1815d26eb4f7ac6256eb350ab351474daea8d588400146ab228780i0",
        "0xbce89252cece632ef819943bed9cd0e2576f8ce26f9f02075b621b1c9a28056a"
      ],
      "network": "testnet",
      "includeContent": true,
      "includeMetadata": true
    }
    ```
    """
    if validate_format(body.format) == "raw":
        raise CKBFSError(
            ErrorCode.INVALID_FORMAT,
            "Il formato raw non è supportato per le richieste batch",
            "Usa il formato json per il batch oppure richieste singole per il formato raw",
        )

    results = service.get_multiple_files(body.uris, body.network, body.includeContent, body.includeMetadata)

    processed = []
    for item in results:
        if "error" in item:
            processed.append(BatchItemError(**item).model_dump())
        else:
            processed.append(FileResponse(**item).model_dump(exclude_none=True))

    successful = sum(1 for item in processed if "error" not in item)
    batch = BatchResult(
        total=len(body.uris),
        successful=successful,
        failed=len(processed) - successful,
        results=processed,
        processedAt=utc_now_iso(),
    )
    logger.info("Batch completato: %d/%d riusciti", batch.successful, batch.total)
    return envelope(request, batch.model_dump())


@app.get(f"{API_BASE}/ckbfs/health", tags=["CKBFS"])
def ckbfs_health(request: Request, service: CKBFSService = Depends(get_ckbfs_service)):
    """
    **Stato delle reti CKB**

    `healthy` se almeno una rete risponde; se nessuna risponde la risposta è 503 SERVICE_UNAVAILABLE.
    """
    status = HealthStatus(**service.get_health_status()).model_dump()
    if status["status"] != "healthy":
        error = CKBFSError(
            ErrorCode.SERVICE_UNAVAILABLE,
            "Nessuna rete CKB raggiungibile",
            json.dumps(status["networks"]),
        )
        return error_response(request, error, data=status)
    return envelope(request, status)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)
