# Tools/document_indexer/models.py
# Modelos de datos para el indexador de documentos notariales

from dataclasses import dataclass, field, asdict
from typing import Optional, Any, Dict, List


@dataclass
class DocumentMeta:
    """Metadatos del documento tal como los entrega el repositorio."""
    id: str
    nombre: str = ""
    tipo: Optional[str] = None  # escritura, plano, inscripcion, identificacion...
    mime_type: Optional[str] = None
    s3_key: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    tramite_id: Optional[str] = None


@dataclass
class TextExtraction:
    """Resultado de extraer texto usable de un documento."""
    text: str
    source: str  # metadata | ocr_cache | pdf_text | docx_text | textract_detect_document_text | none
    needs_ocr: bool = False
    reason: Optional[str] = None


@dataclass
class ChunkDraft:
    """Chunk producido por el chunker, antes de embeddings y persistencia."""
    page_number: int
    chunk_index: int
    text: str
    token_count: int
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ChunkRow:
    """Fila persistida en documento_text_chunks."""
    documento_id: str
    tramite_id: Optional[str]
    page_number: int
    chunk_index: int
    text: str
    token_count: int
    metadata: Dict[str, Any]
    embedding: Optional[List[float]]
    document_hash: str
    chunking_version: str
    embedding_model: str
    embedding_dimensions: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class IndexingResult:
    """Resultado (serializable a JSON) de una llamada a index_document."""
    status: str  # indexed | skipped | needs_ocr | error
    chunks_created: int = 0
    embeddings_created: int = 0
    reason: Optional[str] = None
    trace_id: Optional[str] = None
    documento_id: Optional[str] = None
    extraction_source: Optional[str] = None
    document_hash: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class OcrPage:
    """Texto OCR de una página cacheado para un trámite."""
    doc_key: str
    page: int
    text: str
    doc_name: str = ""
    doc_subtype: Optional[str] = None
    doc_role: Optional[str] = None
    updated_at: Optional[str] = None
