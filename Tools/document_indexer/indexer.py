# Tools/document_indexer/indexer.py
# Orquestador de indexado de un documento:
#   documento -> trámite -> texto -> firma -> (skip | chunks -> embeddings -> commit) -> bitácora
# - Idempotente por firma (documento_id, document_hash, chunking_version, embedding_model)
# - Un lock por documento_id serializa los re-indexados concurrentes
# - Cada colaborador corre con timeout; sus fallas se vuelven status=error, nunca excepción
# - El commit (borrar generaciones viejas + upsert único) ocurre solo con todos los embeddings listos

import time
import uuid
import logging
import threading
from contextlib import contextmanager
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence

from utils.activity_log import log_document_indexing
from utils.errors import CollaboratorFailure, NotFoundError, ValidationError

from .chunker import chunk_text, get_chunking_profile
from .config import (
    COLLABORATOR_TIMEOUT_SECONDS,
    DEFAULT_CHUNKING_VERSION,
    EMBEDDING_DIMENSIONS,
    EMBEDDING_MODEL,
    INDEXING_TIMEOUT_SECONDS,
    MAX_CHUNK_TEXT_CHARS,
    REDIS_URL,
)
from .models import ChunkDraft, ChunkRow, DocumentMeta, IndexingResult, TextExtraction
from .signature import IndexSignature, build_signature, compute_document_hash

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="doc-indexer")


@dataclass
class IndexingDeps:
    """Colaboradores externos del orquestador (todos inyectables)."""
    find_documento_by_id: Callable[[str], Optional[DocumentMeta]]
    find_tramite_id_by_documento_id: Callable[[str], Optional[str]]
    extract_text: Callable[[DocumentMeta], Any]
    generate_embedding: Callable[[str], Optional[Sequence[float]]]
    has_existing_index_signature: Callable[[IndexSignature], bool]
    delete_index_signature: Callable[[IndexSignature], None]
    upsert_chunks: Callable[[List[ChunkRow]], None]
    log_event: Callable[[Dict[str, Any]], None] = log_document_indexing
    list_index_signatures: Optional[Callable[[str], List[IndexSignature]]] = None


class KeyedLocks:
    """Un threading.Lock por llave; se libera la entrada cuando nadie la usa."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, list] = {}

    @contextmanager
    def hold(self, key: str, timeout: float) -> Iterator[bool]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        acquired = entry[0].acquire(timeout=max(0.0, timeout))
        try:
            yield acquired
        finally:
            if acquired:
                entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)


_document_locks = KeyedLocks()


@dataclass
class _Run:
    documento_id: str
    trace_id: str
    user_id: str
    force_reindex: bool
    deadline: float
    started: float = field(default_factory=time.monotonic)
    tramite_id: Optional[str] = None
    extraction_source: Optional[str] = None
    document_hash: Optional[str] = None

    def remaining(self) -> float:
        return self.deadline - time.monotonic()


def _coerce_extraction(raw: Any) -> TextExtraction:
    if isinstance(raw, TextExtraction):
        return raw
    if isinstance(raw, Mapping):
        return TextExtraction(
            text=raw.get("text") or "",
            source=raw.get("source") or "none",
            needs_ocr=bool(raw.get("needs_ocr")),
            reason=raw.get("reason"),
        )
    raise CollaboratorFailure("extract_text", "extract_text_invalid_result")


class DocumentIndexingService:
    """
    Indexa documentos en chunks con embeddings.

    Uso:
        service = DocumentIndexingService(build_default_deps())
        result = service.index_document("doc-123")
    """

    def __init__(
        self,
        deps: IndexingDeps,
        chunking_version: str = DEFAULT_CHUNKING_VERSION,
        embedding_model: str = EMBEDDING_MODEL,
        embedding_dimensions: int = EMBEDDING_DIMENSIONS,
        collaborator_timeout: float = COLLABORATOR_TIMEOUT_SECONDS,
        indexing_timeout: float = INDEXING_TIMEOUT_SECONDS,
        locks: Optional[KeyedLocks] = None,
    ):
        get_chunking_profile(chunking_version)
        self.deps = deps
        self.chunking_version = chunking_version
        self.embedding_model = embedding_model
        self.embedding_dimensions = embedding_dimensions
        self.collaborator_timeout = collaborator_timeout
        self.indexing_timeout = indexing_timeout
        self.locks = locks or _document_locks
        # Última firma comiteada por documento (sin list_index_signatures es la única forma de hallar la vieja)
        self._committed: Dict[str, IndexSignature] = {}

    # ----------------------------
    # Helpers
    # ----------------------------

    def _call(self, run: _Run, stage: str, fn: Callable, *args):
        """Ejecuta un colaborador con timeout acotado por el deadline de la corrida."""
        timeout = min(self.collaborator_timeout, run.remaining())
        if timeout <= 0:
            raise CollaboratorFailure(stage, "deadline_exceeded")
        future = _executor.submit(fn, *args)
        try:
            return future.result(timeout=timeout)
        except FutureTimeout:
            future.cancel()
            raise CollaboratorFailure(stage, f"{stage}_timeout")
        except (NotFoundError, ValidationError, CollaboratorFailure):
            raise
        except Exception as e:
            raise CollaboratorFailure(stage, f"{stage}_failed", cause=e) from e

    def _commit_call(self, run: _Run, fn: Callable, *args):
        """
        Escritura del commit. Al vencer el timeout no se abandona: la corrida (y con
        ella el lock del documento) espera a que la escritura termine, así otra
        corrida nunca comitea encima y el status reportado es lo que realmente pasó.
        """
        timeout = max(0.0, min(self.collaborator_timeout, run.remaining()))
        t = time.monotonic()
        future = _executor.submit(fn, *args)
        try:
            try:
                return future.result(timeout=timeout)
            except FutureTimeout:
                logger.warning(f"[DocumentIndexer] ⏳ {run.documento_id}: escritura lenta (> {timeout:.1f}s), esperando a que termine")
                self._log(run, "persist", "slow", t, {"timeout_seconds": timeout})
                return future.result()
        except Exception as e:
            raise CollaboratorFailure("persist", "persist_failed", cause=e) from e

    def _log(self, run: _Run, stage: str, status: str, since: float, metadata: Optional[Dict[str, Any]] = None) -> None:
        entry = {
            "trace_id": run.trace_id,
            "user_id": run.user_id,
            "documento_id": run.documento_id,
            "tramite_id": run.tramite_id,
            "stage": stage,
            "status": status,
            "duration_ms": int((time.monotonic() - since) * 1000),
            "metadata": metadata or {},
        }
        try:
            self.deps.log_event(entry)
        except Exception as e:
            logger.warning(f"[DocumentIndexer] ⚠️ log_event falló ({stage}/{status}): {e}")

    def _finish(self, run: _Run, status: str, chunks: int = 0, embeddings: int = 0,
                reason: Optional[str] = None) -> IndexingResult:
        result = IndexingResult(
            status=status,
            chunks_created=chunks,
            embeddings_created=embeddings,
            reason=reason,
            trace_id=run.trace_id,
            documento_id=run.documento_id,
            extraction_source=run.extraction_source,
            document_hash=run.document_hash,
        )
        self._log(run, "index_document", status, run.started, {
            "chunks_created": chunks,
            "embeddings_created": embeddings,
            "reason": reason,
            "force_reindex": run.force_reindex,
        })
        return result

    def _build_rows(self, run: _Run, drafts: List[ChunkDraft], vectors: List[List[float]]) -> List[ChunkRow]:
        rows = []
        for draft, vec in zip(drafts, vectors):
            rows.append(
                ChunkRow(
                    documento_id=run.documento_id,
                    tramite_id=run.tramite_id,
                    page_number=draft.page_number,
                    chunk_index=draft.chunk_index,
                    text=draft.text[:MAX_CHUNK_TEXT_CHARS],
                    token_count=draft.token_count,
                    metadata={
                        **draft.metadata,
                        "trace_id": run.trace_id,
                        "extractor_source": run.extraction_source,
                    },
                    embedding=list(vec),
                    document_hash=run.document_hash or "",
                    chunking_version=self.chunking_version,
                    embedding_model=self.embedding_model,
                    embedding_dimensions=len(vec) or self.embedding_dimensions,
                )
            )
        return rows

    # ----------------------------
    # API
    # ----------------------------

    def index_document(
        self,
        documento_id: str,
        force_reindex: bool = False,
        trace_id: Optional[str] = None,
        user_id: str = "system",
    ) -> IndexingResult:
        """
        Indexa un documento. Solo lanza NotFoundError (documento inexistente)
        o ValidationError (documento_id vacío); cualquier otra falla regresa status=error.
        """
        if not isinstance(documento_id, str) or not documento_id.strip():
            raise ValidationError("documento_id requerido", path="documento_id")

        run = _Run(
            documento_id=documento_id,
            trace_id=trace_id or str(uuid.uuid4()),
            user_id=user_id or "system",
            force_reindex=bool(force_reindex),
            deadline=time.monotonic() + self.indexing_timeout,
        )
        self._log(run, "index_document", "start", run.started, {"force_reindex": run.force_reindex})

        try:
            return self._index(run)
        except NotFoundError:
            raise
        except CollaboratorFailure as e:
            logger.error(f"[DocumentIndexer] ❌ {run.documento_id} falló en {e.stage}: {e.reason} ({e.cause})")
            self._log(run, e.stage, "error", run.started, {"reason": e.reason, "error": str(e.cause or e)})
            return self._finish(run, "error", reason=e.reason)
        except Exception as e:
            logger.exception(f"[DocumentIndexer] ❌ Error inesperado indexando {run.documento_id}")
            return self._finish(run, "error", reason=f"unexpected_error:{type(e).__name__}")

    def _index(self, run: _Run) -> IndexingResult:
        deps = self.deps

        doc = self._call(run, "find_documento", deps.find_documento_by_id, run.documento_id)
        if doc is None:
            self._log(run, "index_document", "error", run.started, {"reason": "documento_not_found"})
            raise NotFoundError("documento", run.documento_id)

        run.tramite_id = self._call(run, "find_tramite", deps.find_tramite_id_by_documento_id, run.documento_id)
        if run.tramite_id and not doc.tramite_id:
            doc = replace(doc, tramite_id=run.tramite_id)

        # 1) Texto
        t = time.monotonic()
        extraction = _coerce_extraction(self._call(run, "extract_text", deps.extract_text, doc))
        run.extraction_source = extraction.source
        if extraction.needs_ocr or not (extraction.text or "").strip():
            reason = extraction.reason or "no_usable_text"
            self._log(run, "extract_text", "needs_ocr", t, {"source": extraction.source, "reason": reason})
            return self._finish(run, "needs_ocr", reason=reason)
        self._log(run, "extract_text", "success", t, {
            "source": extraction.source,
            "text_chars": len(extraction.text),
        })

        # 2) Firma
        run.document_hash = compute_document_hash(extraction.text)
        signature = build_signature(run.documento_id, run.document_hash, self.chunking_version, self.embedding_model)

        with self.locks.hold(run.documento_id, timeout=run.remaining()) as acquired:
            if not acquired:
                raise CollaboratorFailure("lock", "document_locked")
            return self._index_locked(run, doc, extraction, signature)

    def _index_locked(self, run: _Run, doc: DocumentMeta, extraction: TextExtraction,
                      signature: IndexSignature) -> IndexingResult:
        deps = self.deps

        # 3) Idempotencia (se evalúa bajo el lock: un duplicado concurrente termina en skipped)
        if not run.force_reindex:
            t = time.monotonic()
            if self._call(run, "idempotency", deps.has_existing_index_signature, signature):
                self._log(run, "idempotency", "skipped", t, {"document_hash": run.document_hash})
                self._committed[run.documento_id] = signature
                return self._finish(run, "skipped", reason="index_signature_exists")

        # 4) Chunking
        t = time.monotonic()
        drafts = chunk_text(
            extraction.text,
            self.chunking_version,
            {"document_type": doc.tipo, "documento_nombre": doc.nombre},
        )
        self._log(run, "chunking", "success", t, {"chunks": len(drafts), "chunking_version": self.chunking_version})
        if not drafts:
            return self._finish(run, "needs_ocr", reason="no_chunks")

        # 5) Embeddings (antes de tocar lo persistido)
        t = time.monotonic()
        vectors: List[List[float]] = []
        for draft in drafts:
            vec = self._call(run, "embedding", deps.generate_embedding, draft.text[:MAX_CHUNK_TEXT_CHARS])
            if vec is None or len(vec) == 0:
                raise CollaboratorFailure("embedding", f"embedding_failed_for_chunk_{draft.chunk_index}")
            vectors.append(list(vec))
        self._log(run, "embedding", "success", t, {"embeddings": len(vectors), "model": self.embedding_model})

        rows = self._build_rows(run, drafts, vectors)

        # 6) Commit: reemplazo de generación
        if run.remaining() <= 0:
            raise CollaboratorFailure("persist", "deadline_exceeded_before_commit")

        t = time.monotonic()
        stale: List[IndexSignature] = []
        if deps.list_index_signatures is not None:
            listed = self._call(run, "persist", deps.list_index_signatures, run.documento_id) or []
            stale = [s for s in listed if s != signature]
        elif self._committed.get(run.documento_id) not in (None, signature):
            stale.append(self._committed[run.documento_id])
        if run.force_reindex:
            stale.append(signature)
        for sig in stale:
            self._commit_call(run, deps.delete_index_signature, sig)
        self._commit_call(run, deps.upsert_chunks, rows)
        self._committed[run.documento_id] = signature
        self._log(run, "persist", "success", t, {"rows": len(rows), "deleted_signatures": len(stale)})

        logger.info(f"[DocumentIndexer] ✅ {run.documento_id}: {len(rows)} chunks ({run.extraction_source})")
        return self._finish(run, "indexed", chunks=len(rows), embeddings=len(vectors))


def build_default_deps(local_dir: Optional[str] = None, ocr_cache=None) -> IndexingDeps:
    """
    Colaboradores de producción: Supabase (documentos + chunks), OpenAI (embeddings),
    extractor con S3/Textract y bitácora de actividad.
    Con `local_dir` los chunks van a un LocalChunkStore con cache de embeddings.
    """
    from .embeddings import EmbeddingCache, generate_embedding, make_cached_embedder
    from .extractor import DocumentTextExtractor
    from .ocr_cache import OcrPageCache, RedisKeyValueStore
    from .store import LocalChunkStore, SupabaseChunkStore, SupabaseDocumentRepository

    repo = SupabaseDocumentRepository()
    if local_dir:
        store = LocalChunkStore(local_dir)
        embed = make_cached_embedder(generate_embedding, EmbeddingCache(local_dir))
    else:
        store = SupabaseChunkStore()
        embed = generate_embedding

    if ocr_cache is None and REDIS_URL:
        ocr_cache = OcrPageCache(RedisKeyValueStore())

    return IndexingDeps(
        find_documento_by_id=repo.find_documento_by_id,
        find_tramite_id_by_documento_id=repo.find_tramite_id_by_documento_id,
        extract_text=DocumentTextExtractor(ocr_cache=ocr_cache),
        generate_embedding=embed,
        has_existing_index_signature=store.has_existing_index_signature,
        delete_index_signature=store.delete_index_signature,
        list_index_signatures=store.list_index_signatures,
        upsert_chunks=store.upsert_chunks,
    )
