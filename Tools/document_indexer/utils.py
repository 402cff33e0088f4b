# Tools/document_indexer/utils.py
# Utilidades generales para el indexador de documentos

import math
import hashlib
from typing import Any, List, Optional

import numpy as np

from .config import (
    ALNUM_RE,
    CHARS_PER_TOKEN,
    MIN_ALNUM_RATIO,
    MIN_USABLE_TEXT_CHARS,
    MULTI_NEWLINE_RE,
    TRAILING_SPACES_RE,
)


def sha256_text(s: str) -> str:
    """SHA-256 hex de un texto (UTF-8)."""
    return hashlib.sha256((s or "").encode("utf-8")).hexdigest()


def normalize_text(raw: str) -> str:
    """
    Normaliza saltos de línea para que el chunking sea estable:
    CRLF/CR -> LF, sin espacios al final de línea, máximo una línea en blanco.
    """
    text = raw.replace("\r\n", "\n").replace("\r", "\n")
    text = TRAILING_SPACES_RE.sub("\n", text)
    text = MULTI_NEWLINE_RE.sub("\n\n", text)
    return text.strip()


def estimate_tokens(text: str) -> int:
    """Estimación barata de tokens (4 chars ~ 1 token), mínimo 1."""
    return max(1, math.ceil(len(text) / CHARS_PER_TOKEN))


def is_usable_text(text: Optional[str]) -> bool:
    """Texto usable = suficientemente largo y mayormente alfanumérico."""
    t = (text or "").strip()
    if len(t) < MIN_USABLE_TEXT_CHARS:
        return False
    alnum = len(ALNUM_RE.findall(t))
    return (alnum / max(1, len(t))) >= MIN_ALNUM_RATIO


def normalize_vec_1d(v: Any) -> np.ndarray:
    """Normaliza un vector 1D a longitud unitaria."""
    v = np.asarray(v, dtype=np.float32).reshape(-1)
    n = np.linalg.norm(v)
    if n == 0:
        return v
    return (v / n).astype(np.float32)


def embedding_to_1d_list(x: Any) -> Optional[List[float]]:
    """
    Convierte un embedding (lista, np.ndarray (d,) o (1, d)) a lista 1D.
    Regresa None si viene vacío.
    """
    if x is None:
        return None
    arr = np.asarray(x, dtype=np.float32).reshape(-1)
    if arr.size == 0:
        return None
    return arr.tolist()


def get_path(obj: Any, *keys: str) -> Any:
    """Acceso seguro a dicts anidados: get_path(d, 'a', 'b')."""
    cur = obj
    for k in keys:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(k)
    return cur
