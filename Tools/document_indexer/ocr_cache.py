# Tools/document_indexer/ocr_cache.py
# Cache de texto OCR por página para los documentos de un trámite.
# El backend es inyectable: cualquier objeto con get / set(ttl) / scan(prefix).

import os
import json
import time
import hashlib
import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Protocol, Tuple

import redis

from .config import (
    OCR_CACHE_DEFAULT_TTL_SECONDS,
    OCR_CACHE_MAX_KEYS,
    OCR_CACHE_MAX_TTL_SECONDS,
    OCR_CACHE_MIN_TTL_SECONDS,
    OCR_CACHE_PREFIX,
    OCR_CACHE_SCAN_COUNT,
    REDIS_URL,
)
from .models import OcrPage

logger = logging.getLogger(__name__)

SCAN_MAX_ITERATIONS = 6


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...
    def set(self, key: str, value: str, ttl_seconds: int) -> None: ...
    def scan(self, prefix: str, max_keys: int = OCR_CACHE_MAX_KEYS) -> List[str]: ...


class RedisKeyValueStore:
    """KeyValueStore sobre redis-py."""

    def __init__(self, client: Optional[redis.Redis] = None, url: str = REDIS_URL):
        if client is None:
            if not url:
                raise RuntimeError("REDIS_URL no configurado")
            client = redis.Redis.from_url(url, decode_responses=True)
        self.client = client

    def get(self, key: str) -> Optional[str]:
        return self.client.get(key)

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self.client.set(key, value, ex=ttl_seconds)

    def scan(self, prefix: str, max_keys: int = OCR_CACHE_MAX_KEYS) -> List[str]:
        out: List[str] = []
        cursor = 0
        for _ in range(SCAN_MAX_ITERATIONS):
            cursor, keys = self.client.scan(cursor=cursor, match=f"{prefix}*", count=OCR_CACHE_SCAN_COUNT)
            for k in keys:
                out.append(k)
                if len(out) >= max_keys:
                    return out
            if int(cursor) == 0:
                break
        return out


class InMemoryKeyValueStore:
    """KeyValueStore en memoria con expiración (pruebas / modo local)."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            value, expires_at = item
            if self._clock() >= expires_at:
                del self._data[key]
                return None
            return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._data[key] = (value, self._clock() + ttl_seconds)

    def scan(self, prefix: str, max_keys: int = OCR_CACHE_MAX_KEYS) -> List[str]:
        now = self._clock()
        with self._lock:
            keys = sorted(k for k, (_, exp) in self._data.items() if k.startswith(prefix) and exp > now)
        return keys[:max_keys]


def ttl_seconds_from_env() -> int:
    """PREAVISO_OCR_CACHE_TTL_SECONDS acotado a 5 min .. 24 h (default 2 h)."""
    raw = os.getenv("PREAVISO_OCR_CACHE_TTL_SECONDS")
    try:
        n = int(float(raw)) if raw else OCR_CACHE_DEFAULT_TTL_SECONDS
    except ValueError:
        return OCR_CACHE_DEFAULT_TTL_SECONDS
    if n <= 0:
        return OCR_CACHE_DEFAULT_TTL_SECONDS
    return min(max(OCR_CACHE_MIN_TTL_SECONDS, n), OCR_CACHE_MAX_TTL_SECONDS)


def make_doc_key(doc_name: str, doc_subtype: Optional[str] = None, doc_role: Optional[str] = None) -> str:
    base = f"{doc_name or ''}|{doc_subtype or ''}|{doc_role or ''}"
    return hashlib.sha1(base.encode("utf-8")).hexdigest()[:16]


def make_page_key(tramite_id: str, doc_key: str, page: int) -> str:
    return f"{OCR_CACHE_PREFIX}:{tramite_id}:{doc_key}:p:{page}"


class OcrPageCache:
    """Cache de páginas OCR por trámite."""

    def __init__(self, store: KeyValueStore, ttl_seconds: Optional[int] = None):
        self.store = store
        self.ttl_seconds = ttl_seconds or ttl_seconds_from_env()

    def upsert_page(
        self,
        tramite_id: str,
        doc_name: str,
        page: int,
        text: str,
        doc_subtype: Optional[str] = None,
        doc_role: Optional[str] = None,
    ) -> str:
        """Guarda (o reemplaza) el texto de una página. Regresa el doc_key."""
        if not tramite_id or page < 1:
            raise ValueError("tramite_id requerido y page >= 1")
        doc_key = make_doc_key(doc_name, doc_subtype, doc_role)
        entry = {
            "tramite_id": tramite_id,
            "doc_key": doc_key,
            "doc_name": doc_name or None,
            "doc_subtype": doc_subtype,
            "doc_role": doc_role,
            "page": page,
            "text": text,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        self.store.set(make_page_key(tramite_id, doc_key, page), json.dumps(entry, ensure_ascii=False), self.ttl_seconds)
        return doc_key

    def list_pages(self, tramite_id: str, max_keys: int = OCR_CACHE_MAX_KEYS) -> List[OcrPage]:
        """Páginas cacheadas del trámite, ordenadas por (documento, página)."""
        keys = self.store.scan(f"{OCR_CACHE_PREFIX}:{tramite_id}:", max_keys=max_keys)
        pages: List[OcrPage] = []
        for key in keys:
            raw = self.store.get(key)
            if not raw:
                continue
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning(f"[OcrCache] ⚠️ Entrada corrupta: {key}")
                continue
            pages.append(
                OcrPage(
                    doc_key=data.get("doc_key", ""),
                    page=int(data.get("page", 0)),
                    text=data.get("text") or "",
                    doc_name=data.get("doc_name") or "",
                    doc_subtype=data.get("doc_subtype"),
                    doc_role=data.get("doc_role"),
                    updated_at=data.get("updated_at"),
                )
            )
        pages.sort(key=lambda p: (p.doc_key, p.page))
        return pages

    def get_document_text(
        self,
        tramite_id: str,
        doc_name: str,
        doc_subtype: Optional[str] = None,
        doc_role: Optional[str] = None,
    ) -> str:
        """Texto del documento con páginas unidas por '\\f' en orden de página."""
        doc_key = make_doc_key(doc_name, doc_subtype, doc_role)
        pages = [p for p in self.list_pages(tramite_id) if p.doc_key == doc_key]
        return "\f".join(p.text for p in pages if p.text.strip())
