# Tools/document_indexer/signature.py
# Firma de índice direccionada por contenido:
# (documento_id, document_hash, chunking_version, embedding_model)

import hashlib
from dataclasses import dataclass
from typing import Dict

from utils.errors import ValidationError

from .utils import sha256_text


def compute_document_hash(text: str) -> str:
    """
    Hash del texto extraído que se usa para chunking (no de los bytes del archivo):
    un mejor OCR sobre el mismo archivo produce otra firma.
    """
    if not isinstance(text, str):
        raise ValidationError("el texto a hashear debe ser str", path="text")
    return sha256_text(text)


@dataclass(frozen=True)
class IndexSignature:
    """Identidad de una generación de chunks. Igualdad exacta en los cuatro campos."""
    documento_id: str
    document_hash: str
    chunking_version: str
    embedding_model: str

    @property
    def key(self) -> str:
        raw = "\x1f".join((self.documento_id, self.document_hash, self.chunking_version, self.embedding_model))
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    def as_filter(self) -> Dict[str, str]:
        """Filtro de columnas para los stores."""
        return {
            "documento_id": self.documento_id,
            "document_hash": self.document_hash,
            "chunking_version": self.chunking_version,
            "embedding_model": self.embedding_model,
        }


def build_signature(
    documento_id: str,
    document_hash: str,
    chunking_version: str,
    embedding_model: str,
) -> IndexSignature:
    for name, value in (
        ("documento_id", documento_id),
        ("document_hash", document_hash),
        ("chunking_version", chunking_version),
        ("embedding_model", embedding_model),
    ):
        if not isinstance(value, str) or not value.strip():
            raise ValidationError("campo requerido vacío", path=name)
    return IndexSignature(
        documento_id=documento_id,
        document_hash=document_hash,
        chunking_version=chunking_version,
        embedding_model=embedding_model,
    )
