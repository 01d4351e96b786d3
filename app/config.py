# -*- coding: utf-8 -*-
"""
config.py

Configurazione del servizio letta dalle variabili d'ambiente (con default).
Viene letta una sola volta: get_settings() è in cache.
"""
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, Tuple

NETWORKS: Tuple[str, ...] = ("mainnet", "testnet")
LOG_LEVELS: Tuple[str, ...] = ("error", "warn", "info", "debug")

DEFAULT_PROTOCOL_VERSION = "20241025.db973a8e8032"


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"La variabile d'ambiente {key} deve essere un numero intero valido") from None


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() == "true"


def _env_list(key: str, default: str) -> Tuple[str, ...]:
    return tuple(item.strip() for item in os.getenv(key, default).split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    host: str = "127.0.0.1"
    port: int = 8077
    api_prefix: str = "/api"
    api_version: str = "v1"
    version: str = "1.0.0"

    network: str = "testnet"
    resolver_url: str = "http://127.0.0.1:6759/api/v1"
    rpc_urls: Dict[str, str] = field(default_factory=lambda: {
        "mainnet": "https://mainnet.ckb.dev/rpc",
        "testnet": "https://testnet.ckb.dev/rpc",
    })
    protocol_version: str = DEFAULT_PROTOCOL_VERSION

    timeout_ms: int = 30000
    retry_attempts: int = 3
    retry_delay_ms: int = 1000

    log_level: str = "info"
    cors_origins: Tuple[str, ...] = ("*",)
    cors_methods: Tuple[str, ...] = ("GET", "POST", "OPTIONS")
    cors_headers: Tuple[str, ...] = ("Content-Type", "Authorization")
    helmet_enabled: bool = True
    debug: bool = False

    @property
    def api_base(self) -> str:
        return f"{self.api_prefix.rstrip('/')}/{self.api_version.strip('/')}"


def validate_settings(settings: Settings) -> Settings:
    """Solleva ValueError se la configurazione non è coerente."""
    if not 1 <= settings.port <= 65535:
        raise ValueError("PORT deve essere compreso tra 1 e 65535")
    if settings.network not in NETWORKS:
        raise ValueError(f"CKB_NETWORK non valido: {settings.network}. Deve essere 'mainnet' o 'testnet'")
    if settings.log_level not in LOG_LEVELS:
        raise ValueError(f"LOG_LEVEL deve essere uno tra: {', '.join(LOG_LEVELS)}")
    if settings.timeout_ms <= 0:
        raise ValueError("CKBFS_TIMEOUT_MS deve essere positivo")
    if settings.retry_attempts < 1:
        raise ValueError("CKBFS_RETRY_ATTEMPTS deve essere almeno 1")
    if settings.retry_delay_ms < 0:
        raise ValueError("CKBFS_RETRY_DELAY_MS non può essere negativo")
    return settings


def load_settings() -> Settings:
    return validate_settings(Settings(
        host=os.getenv("HOST", "127.0.0.1"),
        port=_env_int("PORT", 8077),
        api_prefix=os.getenv("API_PREFIX", "/api"),
        api_version=os.getenv("API_VERSION", "v1"),
        network=os.getenv("CKB_NETWORK", "testnet"),
        resolver_url=os.getenv("CKBFS_RESOLVER_URL", "http://127.0.0.1:6759/api/v1"),
        rpc_urls={
            "mainnet": os.getenv("CKB_MAINNET_RPC_URL", "https://mainnet.ckb.dev/rpc"),
            "testnet": os.getenv("CKB_TESTNET_RPC_URL", "https://testnet.ckb.dev/rpc"),
        },
        protocol_version=os.getenv("CKBFS_PROTOCOL_VERSION", DEFAULT_PROTOCOL_VERSION),
        timeout_ms=_env_int("CKBFS_TIMEOUT_MS", 30000),
        retry_attempts=_env_int("CKBFS_RETRY_ATTEMPTS", 3),
        retry_delay_ms=_env_int("CKBFS_RETRY_DELAY_MS", 1000),
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
        cors_origins=_env_list("CORS_ORIGIN", "*"),
        cors_methods=_env_list("CORS_METHODS", "GET,POST,OPTIONS"),
        cors_headers=_env_list("CORS_HEADERS", "Content-Type,Authorization"),
        helmet_enabled=_env_bool("HELMET_ENABLED", True),
        debug=_env_bool("DEBUG", False),
    ))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
