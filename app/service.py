# -*- coding: utf-8 -*-
"""
service.py

CKBFSService: facciata di recupero file sopra un Resolver esterno.

- valida rete e URI
- invoca il resolver con timeout per tentativo e retry con attesa lineare
- adatta il RetrievedFile nei tre formati di risposta:
    a) JSON con metadati e contenuto (utf8 / base64)
    b) raw (byte + header, costruiti in main.py)
    c) compatibile legacy {content_type, content: hex, filename}
- batch concorrente con errori per singolo elemento
- sonda di salute delle reti
"""
import contextvars
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from ckbfs_resolver.models import Identifier, RetrievedFile
from ckbfs_resolver.resolver import Resolver

from app.config import DEFAULT_PROTOCOL_VERSION, NETWORKS
from app.content_type import convert_content_to_string, get_encoding_description
from app.errors import CKBFSError, ErrorCode, classify_exception
from app.identifier import parse_uri
from app.schemas import MAX_BATCH_URIS
from app.utils import utc_now_iso

logger = logging.getLogger("ckbfs.service")

T = TypeVar("T")


PROTOCOL_NAME = "ckbfs"

_FETCH_MESSAGES = {
    ErrorCode.FILE_NOT_FOUND: "File non trovato per l'URI: {uri}",
    ErrorCode.NETWORK_ERROR: "Errore di rete durante il recupero del file: {uri}",
    ErrorCode.TIMEOUT_ERROR: "Timeout durante il recupero del file: {uri}",
    ErrorCode.CKBFS_DECODE_ERROR: "Impossibile decodificare i dati CKBFS per l'URI: {uri}",
    ErrorCode.BLOCKCHAIN_ERROR: "Errore blockchain durante il recupero del file: {uri}",
}


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class CKBFSService:
    def __init__(
        self,
        resolver: Resolver,
        default_network: str = "testnet",
        timeout_ms: int = 30000,
        retry_attempts: int = 3,
        retry_delay_ms: int = 1000,
        protocol_version: str = DEFAULT_PROTOCOL_VERSION,
    ) -> None:
        self.resolver = resolver
        self.default_network = default_network
        self.timeout_ms = timeout_ms
        self.retry_attempts = max(1, int(retry_attempts))
        self.retry_delay_ms = retry_delay_ms
        self.protocol_version = protocol_version
        self._sleep: Callable[[float], None] = time.sleep

        logger.info(
            "CKBFSService inizializzato (rete=%s, timeout=%d ms, tentativi=%d)",
            self.default_network, self.timeout_ms, self.retry_attempts,
        )

    # ------------------------------------------------------------------
    # Validazione
    # ------------------------------------------------------------------
    def validate_network(self, network: Optional[str] = None) -> str:
        candidate = network or self.default_network
        if candidate not in NETWORKS:
            raise CKBFSError(
                ErrorCode.INVALID_NETWORK,
                f"Rete non valida: {candidate}. Deve essere 'mainnet' o 'testnet'",
                "network deve essere uno tra: " + ", ".join(NETWORKS),
            )
        return candidate

    def parse_uri(self, uri: str) -> Identifier:
        start = time.monotonic()
        try:
            identifier = parse_uri(uri)
        except CKBFSError as e:
            logger.warning("Parsing URI fallito per %r: %s (%d ms)", uri, e.message, _elapsed_ms(start))
            raise
        logger.debug("URI %s interpretato come %s (%d ms)", uri, identifier.type, _elapsed_ms(start))
        return identifier

    # ------------------------------------------------------------------
    # Timeout + retry
    # ------------------------------------------------------------------
    def _with_retry(self, operation: Callable[[], T], context: str) -> T:
        """
        Esegue `operation` fino a `retry_attempts` volte.

        Ogni tentativo gira in un thread dedicato ed è atteso al massimo
        `timeout_ms`: allo scadere il tentativo viene abbandonato (la chiamata
        esterna non viene interrotta) e conta come TIMEOUT_ERROR.
        Tra un tentativo e il successivo si attende `retry_delay_ms * tentativo`.
        L'ultimo errore viene rilanciato così com'è.
        """
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.retry_attempts + 1):
            executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ckbfs-resolve")
            try:
                future = executor.submit(contextvars.copy_context().run, operation)
                return future.result(timeout=self.timeout_ms / 1000)
            except FutureTimeoutError:
                last_error = CKBFSError(
                    ErrorCode.TIMEOUT_ERROR,
                    f"{context}: nessuna risposta entro {self.timeout_ms} ms",
                    f"Tentativo {attempt}/{self.retry_attempts} scaduto",
                )
            except Exception as e:
                last_error = e
            finally:
                executor.shutdown(wait=False)

            logger.warning(
                "%s fallito (tentativo %d/%d): %s", context, attempt, self.retry_attempts, last_error
            )
            if attempt < self.retry_attempts:
                self._sleep(self.retry_delay_ms * attempt / 1000)

        raise last_error

    # ------------------------------------------------------------------
    # Recupero
    # ------------------------------------------------------------------
    def fetch(self, uri: str, network: Optional[str] = None,
              operation: str = "retrieve") -> Tuple[Identifier, str, RetrievedFile]:
        network = self.validate_network(network)
        identifier = self.parse_uri(uri)
        start = time.monotonic()
        logger.info("Operazione CKBFS %s avviata: %s su %s", operation, uri, network)

        try:
            retrieved = self._with_retry(
                lambda: self.resolver.resolve(identifier, network),
                f"Recupero file {uri}",
            )
            if retrieved is None or not retrieved.content:
                raise CKBFSError(
                    ErrorCode.FILE_NOT_FOUND,
                    f"File non trovato per l'URI: {uri}",
                    f"Nessun contenuto trovato sulla rete {network}",
                )
        except CKBFSError as e:
            logger.error("Operazione CKBFS %s fallita: %s su %s in %d ms (%s)",
                         operation, uri, network, _elapsed_ms(start), e.message)
            raise
        except Exception as e:
            classified = classify_exception(e, default=ErrorCode.BLOCKCHAIN_ERROR)
            logger.error("Operazione CKBFS %s fallita: %s su %s in %d ms (%s)",
                         operation, uri, network, _elapsed_ms(start), e)
            template = _FETCH_MESSAGES.get(classified.code)
            message = template.format(uri=uri) if template else classified.message
            raise CKBFSError(classified.code, message, classified.details) from e

        logger.info("Operazione CKBFS %s completata: %s su %s in %d ms",
                    operation, uri, network, _elapsed_ms(start))
        return identifier, network, retrieved

    def get_file_content(
        self,
        uri: str,
        network: Optional[str] = None,
        include_content: bool = True,
        include_metadata: bool = True,
    ) -> Dict[str, Any]:
        identifier, network, retrieved = self.fetch(uri, network)

        result: Dict[str, Any] = {
            "uri": uri,
            "filename": retrieved.filename,
            "contentType": retrieved.content_type,
            "size": retrieved.size,
            "parsedId": identifier.to_dict(),
        }

        if include_content:
            encoded = convert_content_to_string(retrieved.content, retrieved.content_type, retrieved.filename)
            result["content"] = encoded.content
            result["encoding"] = encoded.encoding
            logger.debug("%s: %s", uri, get_encoding_description(encoded.encoding, retrieved.content_type))

        if include_metadata:
            if retrieved.checksum is not None:
                result["checksum"] = retrieved.checksum
            if retrieved.back_links:
                result["backLinks"] = [link.to_dict() for link in retrieved.back_links]
            result["metadata"] = {
                "network": network,
                "protocol": PROTOCOL_NAME,
                "version": self.protocol_version,
            }

        return result

    def get_file_metadata(self, uri: str, network: Optional[str] = None) -> Dict[str, Any]:
        return self.get_file_content(uri, network, include_content=False)

    def get_raw_file_content(self, uri: str, network: Optional[str] = None) -> Tuple[RetrievedFile, str]:
        _, network, retrieved = self.fetch(uri, network, operation="retrieve-raw")
        return retrieved, network

    def get_compatible_file(self, uri: str, network: Optional[str] = None) -> Dict[str, str]:
        """Formato legacy: contenuto sempre in hex, senza classificazione testo/binario."""
        _, _, retrieved = self.fetch(uri, network, operation="retrieve-compatible")
        return {
            "content_type": retrieved.content_type,
            "content": bytes(retrieved.content).hex(),
            "filename": retrieved.filename,
        }

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------
    def _batch_item(self, uri: str, network: str, include_content: bool,
                    include_metadata: bool) -> Dict[str, Any]:
        try:
            return self.get_file_content(uri, network, include_content, include_metadata)
        except CKBFSError as e:
            return {"uri": uri, "error": e.message, "code": e.code.value}
        except Exception as e:
            error = classify_exception(e)
            logger.exception("Errore inatteso nel batch per %s", uri)
            return {"uri": uri, "error": error.message, "code": error.code.value}

    def get_multiple_files(
        self,
        uris: List[str],
        network: Optional[str] = None,
        include_content: bool = True,
        include_metadata: bool = True,
    ) -> List[Dict[str, Any]]:
        """Recupera tutti gli URI in parallelo; i risultati seguono l'ordine di input."""
        network = self.validate_network(network)
        if not uris:
            return []

        logger.info("Recupero batch di %d file su %s (includeContent=%s)", len(uris), network, include_content)

        with ThreadPoolExecutor(max_workers=min(len(uris), MAX_BATCH_URIS),
                                thread_name_prefix="ckbfs-batch") as executor:
            futures = [
                executor.submit(contextvars.copy_context().run, self._batch_item,
                                uri, network, include_content, include_metadata)
                for uri in uris
            ]
            return [future.result() for future in futures]

    def validate_uri(self, uri: str, network: Optional[str] = None) -> bool:
        network = self.validate_network(network)
        try:
            self.get_file_metadata(uri, network)
        except CKBFSError:
            return False
        return True

    # ------------------------------------------------------------------
    # Salute
    # ------------------------------------------------------------------
    def _probe(self, network: str) -> str:
        try:
            self.resolver.probe(network)
        except Exception as e:
            logger.warning("Rete %s non raggiungibile: %s", network, e)
            return "down"
        return "up"

    def get_health_status(self) -> Dict[str, Any]:
        executor = ThreadPoolExecutor(max_workers=len(NETWORKS), thread_name_prefix="ckbfs-health")
        try:
            futures = {
                network: executor.submit(contextvars.copy_context().run, self._probe, network)
                for network in ("testnet", "mainnet")
            }
            networks = {}
            for network, future in futures.items():
                try:
                    networks[network] = future.result(timeout=self.timeout_ms / 1000)
                except FutureTimeoutError:
                    logger.warning("Sonda della rete %s scaduta dopo %d ms", network, self.timeout_ms)
                    networks[network] = "down"
        finally:
            executor.shutdown(wait=False)

        return {
            "status": "healthy" if "up" in networks.values() else "unhealthy",
            "networks": networks,
            "lastCheck": utc_now_iso(),
        }
