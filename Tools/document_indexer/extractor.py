# Tools/document_indexer/extractor.py
# Extracción de texto usable de un documento notarial.
# Orden: metadata del documento -> cache OCR del trámite -> archivo (PDF / DOCX) -> OCR (imágenes)
# Si nada da texto usable, el resultado es needs_ocr (no es un error).

import io
import json
import logging
from typing import Any, Callable, Dict, Optional

import boto3
from docx import Document as DocxDocument
from pypdf import PdfReader

from .config import AWS_REGION, METADATA_TEXT_KEYS, S3_BUCKET
from .models import DocumentMeta, TextExtraction
from .ocr_cache import OcrPageCache
from .utils import get_path, is_usable_text

logger = logging.getLogger(__name__)

Downloader = Callable[[str], bytes]
OcrEngine = Callable[[bytes, DocumentMeta], Optional[str]]

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def text_from_metadata(metadata: Optional[Dict[str, Any]]) -> str:
    """
    Texto que ya viene en el metadata del documento (OCR previo o captura).
    Si solo hay extracted_data estructurado, se usa su JSON.
    """
    if not isinstance(metadata, dict):
        return ""
    for key in METADATA_TEXT_KEYS:
        val = metadata.get(key)
        if isinstance(val, str) and val.strip():
            return val
    nested = get_path(metadata, "extracted_data", "textoCompleto")
    if isinstance(nested, str) and nested.strip():
        return nested
    extracted = metadata.get("extracted_data")
    if isinstance(extracted, dict) and extracted:
        return json.dumps(extracted, ensure_ascii=False, sort_keys=True)
    return ""


def read_pdf_text(data: bytes) -> str:
    """Texto embebido del PDF; páginas separadas por '\\f'."""
    reader = PdfReader(io.BytesIO(data))
    pages = [(page.extract_text() or "").strip() for page in reader.pages]
    return "\f".join(pages).strip()


def read_docx_text(data: bytes) -> str:
    """Párrafos + celdas de tablas de un .docx."""
    doc = DocxDocument(io.BytesIO(data))
    parts = [p.text.strip() for p in doc.paragraphs if p.text and p.text.strip()]
    for table in doc.tables:
        for row in table.rows:
            cells = [c.text.strip() for c in row.cells if c.text and c.text.strip()]
            if cells:
                parts.append(" | ".join(cells))
    return "\n".join(parts)


def _kind(doc: DocumentMeta) -> str:
    mime = (doc.mime_type or "").lower()
    name = (doc.nombre or "").lower()
    if mime == "application/pdf" or name.endswith(".pdf"):
        return "pdf"
    if mime == DOCX_MIME or name.endswith(".docx"):
        return "docx"
    if mime.startswith("image/") or name.endswith((".png", ".jpg", ".jpeg", ".tif", ".tiff", ".webp")):
        return "image"
    return "other"


class S3Downloader:
    """Descarga el archivo original desde S3."""

    def __init__(self, bucket: str = S3_BUCKET, client=None):
        self.bucket = bucket
        self.client = client or boto3.client("s3", region_name=AWS_REGION)

    def __call__(self, s3_key: str) -> bytes:
        obj = self.client.get_object(Bucket=self.bucket, Key=s3_key)
        return obj["Body"].read()


class TextractOcr:
    """OCR de imágenes con AWS Textract (DetectDocumentText, bloques LINE)."""

    source = "textract_detect_document_text"

    def __init__(self, client=None):
        self.client = client or boto3.client("textract", region_name=AWS_REGION)

    def __call__(self, data: bytes, doc: DocumentMeta) -> Optional[str]:
        resp = self.client.detect_document_text(Document={"Bytes": data})
        lines = [
            b.get("Text", "")
            for b in resp.get("Blocks", [])
            if b.get("BlockType") == "LINE" and b.get("Text")
        ]
        return "\n".join(lines) if lines else None


class DocumentTextExtractor:
    """
    Colaborador extract_text del orquestador.
    Los colaboradores externos (descarga, OCR, cache) son inyectables.
    """

    def __init__(
        self,
        downloader: Optional[Downloader] = None,
        ocr: Optional[OcrEngine] = None,
        ocr_cache: Optional[OcrPageCache] = None,
    ):
        self._downloader = downloader
        self._ocr = ocr
        self.ocr_cache = ocr_cache

    @property
    def downloader(self) -> Downloader:
        if self._downloader is None:
            self._downloader = S3Downloader()
        return self._downloader

    @property
    def ocr(self) -> OcrEngine:
        if self._ocr is None:
            self._ocr = TextractOcr()
        return self._ocr

    def __call__(self, doc: DocumentMeta) -> TextExtraction:
        return self.extract(doc)

    def extract(self, doc: DocumentMeta) -> TextExtraction:
        meta_text = text_from_metadata(doc.metadata)
        if is_usable_text(meta_text):
            return TextExtraction(text=meta_text, source="metadata")

        if self.ocr_cache is not None and doc.tramite_id:
            cached = self.ocr_cache.get_document_text(
                doc.tramite_id,
                doc.nombre,
                doc_subtype=doc.tipo,
                doc_role=(doc.metadata or {}).get("role"),
            )
            if is_usable_text(cached):
                return TextExtraction(text=cached, source="ocr_cache")

        if not doc.s3_key:
            return TextExtraction(text="", source="none", needs_ocr=True, reason="missing_s3_key")

        try:
            data = self.downloader(doc.s3_key)
        except Exception as e:
            logger.warning(f"[Extractor] ⚠️ No se pudo descargar {doc.s3_key}: {e}")
            return TextExtraction(text="", source="none", needs_ocr=True, reason="download_failed")

        if not data:
            return TextExtraction(text="", source="none", needs_ocr=True, reason="empty_file")

        kind = _kind(doc)
        reason = "no_usable_text"

        if kind == "pdf":
            text = read_pdf_text(data)
            if is_usable_text(text):
                return TextExtraction(text=text, source="pdf_text")
            reason = "pdf_text_not_usable"
        elif kind == "docx":
            text = read_docx_text(data)
            if is_usable_text(text):
                return TextExtraction(text=text, source="docx_text")
            reason = "docx_text_not_usable"
        elif kind == "image":
            text = self.ocr(data, doc) or ""
            if is_usable_text(text):
                return TextExtraction(text=text, source=TextractOcr.source)

        return TextExtraction(text="", source="none", needs_ocr=True, reason=reason)
