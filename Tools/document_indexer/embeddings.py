# Tools/document_indexer/embeddings.py
# Generación de embeddings (OpenAI) + cache opcional en JSONL

import os
import re
import json
import logging
from typing import Callable, Dict, List, Optional

import tiktoken

from utils.ai_calls import get_openai_client

from .config import (
    COLLABORATOR_TIMEOUT_SECONDS,
    EMBEDDING_DIMENSIONS,
    EMBEDDING_ENCODING,
    EMBEDDING_MAX_INPUT_TOKENS,
    EMBEDDING_MODEL,
)
from .utils import embedding_to_1d_list, normalize_vec_1d, sha256_text

logger = logging.getLogger(__name__)

EmbedFn = Callable[[str], Optional[List[float]]]

_encoder = None


def _get_encoder():
    global _encoder
    if _encoder is None:
        _encoder = tiktoken.get_encoding(EMBEDDING_ENCODING)
    return _encoder


def prepare_embedding_input(text: str, max_tokens: int = EMBEDDING_MAX_INPUT_TOKENS) -> str:
    """Colapsa espacios y recorta al límite de tokens del modelo."""
    clean = re.sub(r"\s+", " ", text or "").strip()
    if not clean:
        return ""
    enc = _get_encoder()
    toks = enc.encode(clean)
    if len(toks) <= max_tokens:
        return clean
    return enc.decode(toks[:max_tokens])


def generate_embedding(
    text: str,
    model: str = EMBEDDING_MODEL,
    dimensions: int = EMBEDDING_DIMENSIONS,
) -> Optional[List[float]]:
    """
    Genera el embedding de un chunk con OpenAI.

    Returns:
        Lista 1D normalizada L2, o None si el texto está vacío.
        Los errores de la API se propagan (el orquestador los contiene).
    """
    payload = prepare_embedding_input(text)
    if not payload:
        return None

    client = get_openai_client("EMBEDDINGS").with_options(timeout=COLLABORATOR_TIMEOUT_SECONDS)
    resp = client.embeddings.create(model=model, input=payload, dimensions=dimensions)
    vec = embedding_to_1d_list(resp.data[0].embedding)
    if vec is None:
        return None
    if len(vec) != dimensions:
        logger.warning(f"[Embeddings] ⚠️ Dimensión inesperada: {len(vec)} (esperada {dimensions})")
    return normalize_vec_1d(vec).tolist()


class EmbeddingCache:
    """
    Cache de embeddings en JSONL por modelo.
    Clave = sha256(texto); valor = {"embedding": [...], "dim": int}
    """

    def __init__(self, out_dir: str, model: str = EMBEDDING_MODEL):
        self.path = os.path.join(out_dir, f"emb_cache_{model}.jsonl")
        self._rows: Dict[str, List[float]] = {}
        self._load()

    def _load(self) -> None:
        if not os.path.exists(self.path):
            return
        with open(self.path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    row = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning(f"[Embeddings] ⚠️ Línea corrupta en {self.path}, se ignora")
                    continue
                if row.get("cache_key") and row.get("embedding"):
                    self._rows[row["cache_key"]] = row["embedding"]

    def get(self, text: str) -> Optional[List[float]]:
        return self._rows.get(sha256_text(text))

    def put(self, text: str, embedding: List[float]) -> None:
        key = sha256_text(text)
        self._rows[key] = embedding
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps({"cache_key": key, "embedding": embedding, "dim": len(embedding)}) + "\n")

    def __len__(self) -> int:
        return len(self._rows)


def make_cached_embedder(embed_fn: EmbedFn, cache: EmbeddingCache) -> EmbedFn:
    """Envuelve un generador de embeddings para no re-embeddear textos ya vistos."""

    def _embed(text: str) -> Optional[List[float]]:
        hit = cache.get(text)
        if hit:
            return hit
        vec = embed_fn(text)
        if vec:
            cache.put(text, vec)
        return vec

    return _embed
