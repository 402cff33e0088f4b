"""
Pytest configuration and fixtures for the notaria-bot tests.
"""

import hashlib
from typing import Dict, List, Optional
from unittest.mock import Mock

import pytest

from Tools.document_indexer.indexer import DocumentIndexingService, IndexingDeps, KeyedLocks
from Tools.document_indexer.models import DocumentMeta, TextExtraction
from Tools.document_indexer.store import LocalChunkStore

V1 = "v1_text_char_3600_overlap_12"
V2 = "v2_page_char_3600_overlap_12"


def notarial_text(clauses: int = 120, variant: str = "") -> str:
    """Texto de escritura sintético (~110 caracteres por cláusula)."""
    return "\n".join(
        f"Cláusula {i}. El vendedor transmite al comprador el inmueble con folio real 1782486 "
        f"ubicado en la calle Reforma número {i}{variant}."
        for i in range(1, clauses + 1)
    )


def fake_embedding(text: str) -> List[float]:
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [b / 255.0 + 0.01 for b in digest[:8]]


class FakeDocumentRepository:
    """Documentos y trámites en memoria."""

    def __init__(self):
        self.documents: Dict[str, DocumentMeta] = {}
        self.tramites: Dict[str, str] = {}

    def add(self, documento_id: str, text: str, tramite_id: Optional[str] = "tramite-1", tipo: str = "escritura"):
        self.documents[documento_id] = DocumentMeta(
            id=documento_id,
            nombre=f"{documento_id}.pdf",
            tipo=tipo,
            mime_type="application/pdf",
            metadata={"text": text},
        )
        if tramite_id:
            self.tramites[documento_id] = tramite_id

    def set_text(self, documento_id: str, text: str):
        self.documents[documento_id].metadata = {"text": text}

    def find_documento_by_id(self, documento_id: str) -> Optional[DocumentMeta]:
        return self.documents.get(documento_id)

    def find_tramite_id_by_documento_id(self, documento_id: str) -> Optional[str]:
        return self.tramites.get(documento_id)


def extract_from_metadata(doc: DocumentMeta) -> TextExtraction:
    text = (doc.metadata or {}).get("text") or ""
    if not text.strip():
        return TextExtraction(text="", source="none", needs_ocr=True, reason="no_usable_text")
    return TextExtraction(text=text, source="metadata")


@pytest.fixture
def repo():
    """Repositorio con un documento indexable (doc-1)."""
    r = FakeDocumentRepository()
    r.add("doc-1", notarial_text())
    return r


@pytest.fixture
def chunk_store(tmp_path):
    return LocalChunkStore(str(tmp_path / "chunks"))


@pytest.fixture
def embedder():
    return Mock(side_effect=fake_embedding)


@pytest.fixture
def events():
    return []


@pytest.fixture
def deps(repo, chunk_store, embedder, events):
    return IndexingDeps(
        find_documento_by_id=repo.find_documento_by_id,
        find_tramite_id_by_documento_id=repo.find_tramite_id_by_documento_id,
        extract_text=Mock(side_effect=extract_from_metadata),
        generate_embedding=embedder,
        has_existing_index_signature=chunk_store.has_existing_index_signature,
        delete_index_signature=Mock(side_effect=chunk_store.delete_index_signature),
        list_index_signatures=chunk_store.list_index_signatures,
        upsert_chunks=Mock(side_effect=chunk_store.upsert_chunks),
        log_event=events.append,
    )


@pytest.fixture
def service(deps):
    return DocumentIndexingService(deps, chunking_version=V1, locks=KeyedLocks())


# ----------------------------
# Preaviso contexts
# ----------------------------

@pytest.fixture
def complete_context():
    """Contexto de preaviso completo y sin bloqueos (compra con crédito e hipoteca por cancelar)."""
    return {
        "inmueble": {
            "folio_real": "1782486",
            "seccion": "Civil",
            "partidas": ["4521"],
            "direccion": {"calle": "Av. Reforma", "numero": "100", "colonia": "Centro"},
            "existe_hipoteca": True,
        },
        "vendedores": [
            {"tipo_persona": "persona_fisica", "persona_fisica": {"nombre": "Maria Ruiz Soto"}},
        ],
        "compradores": [
            {
                "persona_fisica": {
                    "nombre": "Juan Perez Lopez",
                    "estado_civil": "casado",
                    "conyuge": {"nombre": "Ana Lopez Diaz"},
                }
            }
        ],
        "creditos": [{"institucion": "BBVA", "participantes": [{"nombre": "Juan Perez Lopez"}]}],
        "gravamenes": [{"institucion": "Banorte", "cancelacion_confirmada": False}],
    }


@pytest.fixture
def scenario_context():
    return {
        "inmueble": {"folio_real": "1782486"},
        "compradores": [
            {"persona_fisica": {"nombre": "Juan Perez", "estado_civil": "casado", "conyuge": {"nombre": "Ana Lopez"}}}
        ],
        "vendedores": [{"persona_fisica": {"nombre": "Maria Ruiz"}}],
        "creditos": [{"institucion": "BBVA"}],
    }
