# Tools/document_indexer/store.py
# Persistencia de chunks y acceso a documentos
# - SupabaseChunkStore / SupabaseDocumentRepository: producción (tablas de Supabase)
# - LocalChunkStore: JSONL en disco + búsqueda semántica con FAISS (CLI / pruebas)

import os
import json
import logging
import threading
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

import faiss
import numpy as np

from utils.supabase_client import require_supabase_client

from .config import (
    CHUNKS_ON_CONFLICT,
    CHUNKS_TABLE,
    DOCUMENTOS_TABLE,
    SEARCH_DEFAULT_LIMIT,
    SEARCH_MAX_LIMIT,
    TRAMITE_DOCUMENTOS_TABLE,
)
from .models import ChunkRow, DocumentMeta
from .signature import IndexSignature

logger = logging.getLogger(__name__)

SIGNATURE_FIELDS = ("documento_id", "document_hash", "chunking_version", "embedding_model")


class ChunkStore(Protocol):
    def has_existing_index_signature(self, signature: IndexSignature) -> bool: ...
    def delete_index_signature(self, signature: IndexSignature) -> None: ...
    def list_index_signatures(self, documento_id: str) -> List[IndexSignature]: ...
    def upsert_chunks(self, rows: Sequence[ChunkRow]) -> None: ...


def clamp_search_limit(limit: Optional[int]) -> int:
    if limit is None:
        return SEARCH_DEFAULT_LIMIT
    return max(1, min(SEARCH_MAX_LIMIT, int(limit)))


def _signature_from_row(row: Dict[str, Any]) -> IndexSignature:
    return IndexSignature(**{k: str(row[k]) for k in SIGNATURE_FIELDS})


def _unique_signatures(rows: Iterable[Dict[str, Any]]) -> List[IndexSignature]:
    seen = {}
    for row in rows:
        sig = _signature_from_row(row)
        seen.setdefault(sig.key, sig)
    return sorted(seen.values(), key=lambda s: (s.chunking_version, s.embedding_model, s.document_hash))


# ----------------------------
# Supabase
# ----------------------------

class SupabaseChunkStore:
    """Chunks en la tabla documento_text_chunks (columna tsv para full-text)."""

    def __init__(self, client=None, table: str = CHUNKS_TABLE):
        self._client = client
        self.table = table

    @property
    def client(self):
        if self._client is None:
            self._client = require_supabase_client()
        return self._client

    def has_existing_index_signature(self, signature: IndexSignature) -> bool:
        res = (
            self.client.table(self.table)
            .select("id")
            .match(signature.as_filter())
            .limit(1)
            .execute()
        )
        return bool(res.data)

    def delete_index_signature(self, signature: IndexSignature) -> None:
        self.client.table(self.table).delete().match(signature.as_filter()).execute()

    def list_index_signatures(self, documento_id: str) -> List[IndexSignature]:
        res = (
            self.client.table(self.table)
            .select(",".join(SIGNATURE_FIELDS))
            .eq("documento_id", documento_id)
            .execute()
        )
        return _unique_signatures(res.data or [])

    def upsert_chunks(self, rows: Sequence[ChunkRow]) -> None:
        if not rows:
            return
        payload = [r.to_dict() for r in rows]
        # Una sola petición: PostgREST la aplica en una transacción
        self.client.table(self.table).upsert(payload, on_conflict=CHUNKS_ON_CONFLICT).execute()

    def search_chunks(
        self,
        tramite_id: str,
        query: str,
        documento_ids: Optional[List[str]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Búsqueda full-text (español, sintaxis websearch) acotada a un trámite."""
        q = (query or "").strip()
        if not tramite_id or not q:
            return []
        req = (
            self.client.table(self.table)
            .select("id,documento_id,tramite_id,page_number,chunk_index,text,metadata,created_at")
            .eq("tramite_id", tramite_id)
            .text_search("tsv", q, options={"config": "spanish", "type": "websearch"})
        )
        if documento_ids:
            req = req.in_("documento_id", documento_ids)
        res = req.limit(clamp_search_limit(limit)).execute()
        return res.data or []


class SupabaseDocumentRepository:
    """Lectura de documentos y su trámite."""

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = require_supabase_client()
        return self._client

    def find_documento_by_id(self, documento_id: str) -> Optional[DocumentMeta]:
        res = (
            self.client.table(DOCUMENTOS_TABLE)
            .select("id,nombre,tipo,mime_type,s3_key,metadata")
            .eq("id", documento_id)
            .limit(1)
            .execute()
        )
        if not res.data:
            return None
        row = res.data[0]
        return DocumentMeta(
            id=str(row["id"]),
            nombre=row.get("nombre") or "",
            tipo=row.get("tipo"),
            mime_type=row.get("mime_type"),
            s3_key=row.get("s3_key"),
            metadata=row.get("metadata") or {},
        )

    def find_tramite_id_by_documento_id(self, documento_id: str) -> Optional[str]:
        res = (
            self.client.table(TRAMITE_DOCUMENTOS_TABLE)
            .select("tramite_id")
            .eq("documento_id", documento_id)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        if not res.data:
            return None
        tramite_id = res.data[0].get("tramite_id")
        return str(tramite_id) if tramite_id else None


# ----------------------------
# Local (JSONL + FAISS)
# ----------------------------

class LocalChunkStore:
    """
    Store en disco: un JSONL con todas las filas.
    Cada commit reescribe el archivo completo vía archivo temporal + os.replace,
    así un lector nunca ve una escritura a medias.
    """

    def __init__(self, out_dir: str = "Data", filename: str = "document_chunks.jsonl"):
        self.out_dir = out_dir
        self.path = os.path.join(out_dir, filename)
        self._lock = threading.Lock()
        self._rows: List[Dict[str, Any]] = self._load()

    def _load(self) -> List[Dict[str, Any]]:
        if not os.path.exists(self.path):
            return []
        rows: List[Dict[str, Any]] = []
        with open(self.path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    rows.append(json.loads(line))
        return rows

    def _flush(self, rows: List[Dict[str, Any]]) -> None:
        os.makedirs(self.out_dir, exist_ok=True)
        tmp = self.path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            for r in rows:
                f.write(json.dumps(r, ensure_ascii=False) + "\n")
        os.replace(tmp, self.path)

    @staticmethod
    def _matches(row: Dict[str, Any], signature: IndexSignature) -> bool:
        return all(str(row.get(k)) == v for k, v in signature.as_filter().items())

    @property
    def rows(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._rows)

    def has_existing_index_signature(self, signature: IndexSignature) -> bool:
        with self._lock:
            return any(self._matches(r, signature) for r in self._rows)

    def delete_index_signature(self, signature: IndexSignature) -> None:
        with self._lock:
            kept = [r for r in self._rows if not self._matches(r, signature)]
            if len(kept) != len(self._rows):
                self._flush(kept)
                self._rows = kept

    def list_index_signatures(self, documento_id: str) -> List[IndexSignature]:
        with self._lock:
            return _unique_signatures(r for r in self._rows if r.get("documento_id") == documento_id)

    def upsert_chunks(self, rows: Sequence[ChunkRow]) -> None:
        if not rows:
            return
        with self._lock:
            incoming = {self._row_key(r.to_dict()): r.to_dict() for r in rows}
            merged = [r for r in self._rows if self._row_key(r) not in incoming]
            merged.extend(incoming.values())
            self._flush(merged)
            self._rows = merged

    @staticmethod
    def _row_key(row: Dict[str, Any]) -> tuple:
        return tuple(str(row.get(k)) for k in CHUNKS_ON_CONFLICT.split(","))

    def search_similar(
        self,
        query_vector: Sequence[float],
        tramite_id: Optional[str] = None,
        k: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Búsqueda semántica (producto interno sobre vectores normalizados).
        Reconstruye un IndexFlatIP con las filas del trámite.
        """
        candidates = [
            r for r in self.rows
            if r.get("embedding") and (tramite_id is None or r.get("tramite_id") == tramite_id)
        ]
        if not candidates:
            return []

        mat = np.asarray([r["embedding"] for r in candidates], dtype="float32")
        faiss.normalize_L2(mat)
        index = faiss.IndexFlatIP(mat.shape[1])
        index.add(mat)

        q = np.asarray(query_vector, dtype="float32").reshape(1, -1)
        faiss.normalize_L2(q)
        top = min(clamp_search_limit(k), len(candidates))
        scores, idxs = index.search(q, top)

        results = []
        for score, i in zip(scores[0], idxs[0]):
            if i == -1:
                continue
            row = {key: val for key, val in candidates[i].items() if key != "embedding"}
            row["score"] = float(score)
            results.append(row)
        return results
