"""Test del parser degli URI CKBFS."""
import pytest

from ckbfs_resolver.models import OutPointRef, TypeIdRef

from app.errors import CKBFSError, ErrorCode
from app.identifier import parse_uri

from conftest import TX_HASH, TYPE_ID


def test_outpoint_uri() -> None:
    uri = f"ckbfs://{TX_HASH}i0"
    parsed = parse_uri(uri)
    assert isinstance(parsed, OutPointRef)
    assert parsed.tx_hash == "0x" + TX_HASH
    assert parsed.index == 0
    assert parsed.raw == uri
    assert parsed.to_dict() == {"type": "outPoint", "txHash": "0x" + TX_HASH, "index": 0, "raw": uri}


def test_outpoint_uri_with_large_index() -> None:
    assert parse_uri(f"ckbfs://{TX_HASH}i42").index == 42


@pytest.mark.parametrize("uri", [f"ckbfs://{TYPE_ID}", f"0x{TYPE_ID}", TYPE_ID])
def test_type_id_forms(uri) -> None:
    parsed = parse_uri(uri)
    assert isinstance(parsed, TypeIdRef)
    assert parsed.type_id == "0x" + TYPE_ID
    assert parsed.raw == uri
    assert parsed.to_dict()["type"] == "typeId"


def test_uppercase_hex_is_normalized() -> None:
    parsed = parse_uri(TYPE_ID.upper())
    assert parsed.type_id == "0x" + TYPE_ID
    assert parsed.raw == TYPE_ID.upper()


@pytest.mark.parametrize("uri", [
    "",
    "not-a-uri",
    "ckbfs://abc",
    f"ckbfs://{TX_HASH}i",
    f"ckbfs://{TX_HASH}x0",
    f"ckbfs://{TX_HASH}i-1",
    f"{TX_HASH}i0",
    f"ipfs://{TYPE_ID}",
    f"0x{TYPE_ID}00",
    f"{TYPE_ID}\n",
    f" {TYPE_ID}",
    "g" * 64,
])
def test_invalid_uris(uri) -> None:
    with pytest.raises(CKBFSError) as info:
        parse_uri(uri)
    assert info.value.code == ErrorCode.INVALID_URI
    assert info.value.status_code == 400


def test_non_string_is_rejected() -> None:
    with pytest.raises(CKBFSError):
        parse_uri(None)


def test_parsing_is_deterministic() -> None:
    uri = f"ckbfs://{TX_HASH}i3"
    assert parse_uri(uri) == parse_uri(uri)
