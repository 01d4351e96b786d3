"""Test della classificazione testo/binario."""
import base64

import pytest

from app.content_type import (
    convert_content_to_string,
    get_encoding_description,
    is_text_content_type,
    is_text_file_extension,
    normalize_content_type,
    safe_bytes_to_utf8,
    should_treat_as_text,
)


def test_normalize_strips_parameters_and_case() -> None:
    assert normalize_content_type("Text/HTML; charset=UTF-8") == "text/html"
    assert normalize_content_type(None) == ""


@pytest.mark.parametrize("mime", [
    "text/plain",
    "application/json",
    "application/json; charset=utf-8",
    "APPLICATION/XML",
    "text/x-custom",
    "application/vnd.custom+json",
    "image/svg+xml",
    "application/foo+yaml",
])
def test_text_content_types(mime) -> None:
    assert is_text_content_type(mime)


@pytest.mark.parametrize("mime", ["image/png", "application/pdf", "application/octet-stream", "", None])
def test_binary_content_types(mime) -> None:
    assert not is_text_content_type(mime)


def test_extension_lookup() -> None:
    assert is_text_file_extension("notes.MD")
    assert is_text_file_extension("archive.tar.json")
    assert is_text_file_extension("Dockerfile")
    assert is_text_file_extension("LICENSE")
    assert not is_text_file_extension("photo.jpg")
    assert not is_text_file_extension("")


def test_extension_only_consulted_for_generic_types() -> None:
    assert should_treat_as_text("application/octet-stream", "readme.txt")
    assert should_treat_as_text("application/unknown", "config.yaml")
    assert should_treat_as_text(None, "script.py")
    assert not should_treat_as_text("image/png", "readme.txt")
    assert not should_treat_as_text("application/octet-stream", "photo.jpg")
    assert not should_treat_as_text("application/octet-stream")


def test_safe_utf8_rejects_invalid_bytes() -> None:
    assert safe_bytes_to_utf8("caffè".encode("utf-8")) == "caffè"
    assert safe_bytes_to_utf8(b"\xff\xfe\x00") is None


def test_safe_utf8_rejects_literal_replacement_char() -> None:
    assert safe_bytes_to_utf8("a\ufffdb".encode("utf-8")) is None


def test_text_content_is_returned_as_utf8() -> None:
    encoded = convert_content_to_string(b'{"a": 1}', "application/json", "a.json")
    assert encoded.encoding == "utf8"
    assert encoded.is_text
    assert encoded.content == '{"a": 1}'


def test_binary_content_is_base64() -> None:
    data = bytes(range(256))
    encoded = convert_content_to_string(data, "image/png", "x.png")
    assert encoded.encoding == "base64"
    assert not encoded.is_text
    assert base64.b64decode(encoded.content) == data


def test_text_type_with_invalid_utf8_falls_back_to_base64() -> None:
    encoded = convert_content_to_string(b"\xc3\x28", "text/plain", "broken.txt")
    assert encoded.encoding == "base64"
    assert base64.b64decode(encoded.content) == b"\xc3\x28"


def test_empty_text_content() -> None:
    encoded = convert_content_to_string(b"", "text/plain")
    assert encoded.encoding == "utf8"
    assert encoded.content == ""


def test_encoding_description() -> None:
    assert "UTF-8" in get_encoding_description("utf8", "text/plain")
    assert "base64" in get_encoding_description("base64", "image/png")
