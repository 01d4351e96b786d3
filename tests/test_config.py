"""Test della configurazione da variabili d'ambiente."""
import pytest

from app.config import load_settings


def test_defaults(monkeypatch) -> None:
    for key in ("PORT", "CKB_NETWORK", "HELMET_ENABLED", "CKBFS_TIMEOUT_MS", "LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)
    settings = load_settings()
    assert settings.port == 8077
    assert settings.network == "testnet"
    assert settings.helmet_enabled is True
    assert settings.timeout_ms == 30000
    assert settings.api_base == "/api/v1"


def test_security_headers_can_be_disabled(monkeypatch) -> None:
    monkeypatch.setenv("HELMET_ENABLED", "false")
    assert load_settings().helmet_enabled is False


@pytest.mark.parametrize("key, value", [
    ("PORT", "0"),
    ("PORT", "abc"),
    ("CKB_NETWORK", "devnet"),
    ("LOG_LEVEL", "verbose"),
    ("CKBFS_RETRY_ATTEMPTS", "0"),
])
def test_invalid_values_are_rejected(monkeypatch, key, value) -> None:
    monkeypatch.setenv(key, value)
    with pytest.raises(ValueError):
        load_settings()
