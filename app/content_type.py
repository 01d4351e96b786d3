# -*- coding: utf-8 -*-
"""
content_type.py

Decide se il contenuto di un file va restituito nel JSON come testo UTF-8
oppure come base64.

Ordine delle verifiche:
  1. MIME type normalizzato (minuscolo, senza `;charset=...`) nella allow-list
  2. MIME type che corrisponde a un pattern testuale (text/*, +xml, +json, ...)
  3. solo per i MIME generici (octet-stream, unknown o assente): estensione del file

Le tabelle sono costanti immutabili caricate all'import.
"""
import base64
import logging
import re
from typing import NamedTuple, Optional

logger = logging.getLogger("ckbfs.content")

TEXT_CONTENT_TYPES = frozenset({
    # text/*
    "text/plain",
    "text/html",
    "text/css",
    "text/javascript",
    "text/typescript",
    "text/csv",
    "text/xml",
    "text/markdown",
    "text/rtf",
    # application/* testuali
    "application/json",
    "application/xml",
    "application/javascript",
    "application/typescript",
    "application/x-javascript",
    "application/x-typescript",
    "application/ecmascript",
    "application/rss+xml",
    "application/atom+xml",
    "application/xhtml+xml",
    "application/soap+xml",
    "application/mathml+xml",
    "application/xslt+xml",
    "application/rdf+xml",
    "application/ld+json",
    "application/hal+json",
    "application/vnd.api+json",
    "application/x-yaml",
    "application/yaml",
    "application/toml",
    "application/x-toml",
    "application/ini",
    "application/x-ini",
    "application/x-properties",
    "application/x-sh",
    "application/x-shellscript",
    "application/x-perl",
    "application/x-python",
    "application/x-ruby",
    "application/x-php",
    "application/x-sql",
    "application/sql",
})

TEXT_CONTENT_PATTERNS = (
    re.compile(r"^text/"),
    re.compile(r"\+xml$"),
    re.compile(r"\+json$"),
    re.compile(r"\+yaml$"),
    re.compile(r"\+toml$"),
)

TEXT_FILE_EXTENSIONS = frozenset({
    "txt", "md", "markdown", "rst", "log", "cfg", "conf", "ini", "env",
    "json", "xml", "yaml", "yml", "toml", "csv", "tsv",
    "html", "htm", "xhtml", "css", "js", "ts", "jsx", "tsx",
    "py", "rb", "php", "pl", "sh", "bash", "zsh", "fish",
    "sql", "graphql", "gql", "proto", "thrift",
    "dockerfile", "makefile", "cmake", "gradle",
    "gitignore", "gitattributes", "editorconfig",
    "license", "readme", "changelog", "authors", "contributors",
})

# MIME "non so cosa sia": si decide in base all'estensione
GENERIC_BINARY_TYPES = frozenset({
    "application/octet-stream",
    "binary/octet-stream",
    "application/unknown",
})

REPLACEMENT_CHAR = "\ufffd"


class EncodedContent(NamedTuple):
    content: str
    encoding: str  # "utf8" | "base64"
    is_text: bool


def normalize_content_type(content_type: Optional[str]) -> str:
    if not content_type:
        return ""
    return content_type.lower().split(";", 1)[0].strip()


def is_text_content_type(content_type: Optional[str]) -> bool:
    normalized = normalize_content_type(content_type)
    if not normalized:
        return False
    if normalized in TEXT_CONTENT_TYPES:
        return True
    return any(pattern.search(normalized) for pattern in TEXT_CONTENT_PATTERNS)


def is_text_file_extension(filename: Optional[str]) -> bool:
    if not filename:
        return False
    extension = filename.lower().rsplit(".", 1)[-1]
    return bool(extension) and extension in TEXT_FILE_EXTENSIONS


def should_treat_as_text(content_type: Optional[str], filename: Optional[str] = None) -> bool:
    if is_text_content_type(content_type):
        return True

    normalized = normalize_content_type(content_type)
    if filename and (not normalized or normalized in GENERIC_BINARY_TYPES):
        return is_text_file_extension(filename)

    return False


def safe_bytes_to_utf8(content: bytes) -> Optional[str]:
    """
    Decodifica UTF-8 "a tolleranza": i byte non validi diventano U+FFFD e,
    se nel risultato compare anche un solo U+FFFD, la conversione è considerata
    fallita (anche quando il carattere era già presente nel testo originale).
    """
    text = bytes(content).decode("utf-8", errors="replace")
    if REPLACEMENT_CHAR in text:
        return None
    return text


def convert_content_to_string(
    content: bytes,
    content_type: Optional[str],
    filename: Optional[str] = None,
) -> EncodedContent:
    if should_treat_as_text(content_type, filename):
        text = safe_bytes_to_utf8(content)
        if text is not None:
            return EncodedContent(content=text, encoding="utf8", is_text=True)

        logger.warning(
            "Conversione UTF-8 fallita per %s (%s), uso base64", filename or "<senza nome>", content_type
        )

    return EncodedContent(
        content=base64.b64encode(bytes(content)).decode("ascii"),
        encoding="base64",
        is_text=False,
    )


def get_encoding_description(encoding: str, content_type: Optional[str]) -> str:
    if encoding == "utf8":
        return f"Contenuto testuale UTF-8 ({content_type})"
    return f"Contenuto binario codificato in base64 ({content_type})"
