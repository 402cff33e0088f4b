# Tools/document_indexer/chunker.py
# Chunker determinístico por caracteres con ventana + traslape.
# - Función pura: mismo (texto, versión, doc_meta) => mismos chunks
# - La versión (CHUNKING_PROFILES) fija tamaño de ventana, traslape y manejo de páginas
# - Costo lineal en el largo del texto

import re
from typing import Any, Dict, List, Mapping, Optional

from utils.errors import ValidationError

from .config import (
    BOUNDARY_RE,
    CHUNKING_PROFILES,
    DEFAULT_CHUNKING_VERSION,
    PAGE_BREAK,
    ChunkingProfile,
)
from .models import ChunkDraft
from .utils import estimate_tokens, normalize_text

WHITESPACE_RE = re.compile(r"\s")


def get_chunking_profile(chunking_version: str) -> ChunkingProfile:
    """Regresa el perfil registrado para la versión o lanza ValidationError."""
    profile = CHUNKING_PROFILES.get(chunking_version)
    if profile is None:
        raise ValidationError(
            f"versión de chunking desconocida '{chunking_version}' "
            f"(disponibles: {', '.join(sorted(CHUNKING_PROFILES))})",
            path="chunking_version",
        )
    return profile


def find_chunk_end(text: str, start: int, min_end: int, target_end: int, max_end: int) -> int:
    """
    Elige dónde cortar la ventana que inicia en `start`.

    1) El límite de oración/línea ([\\n.!?;:]) dentro de [min_end, max_end]
       más cercano a target_end (el corte queda justo después del carácter;
       en empate gana el primero).
    2) Si no hay, el primer espacio en blanco desde target_end.
    3) Si no hay, el último espacio antes de target_end.
    4) Corte duro en target_end.
    """
    n = len(text)
    safe_min = max(start + 1, min_end)
    safe_max = min(n, max(safe_min, max_end))
    safe_target = min(max(target_end, safe_min), safe_max)

    if safe_target >= n:
        return n

    best: Optional[int] = None
    best_dist = 0
    for m in BOUNDARY_RE.finditer(text, safe_min, safe_max):
        idx = m.start() + 1
        dist = abs(idx - safe_target)
        if best is None or dist < best_dist:
            best, best_dist = idx, dist
    if best is not None:
        return best

    forward = WHITESPACE_RE.search(text, safe_target, safe_max)
    if forward:
        return forward.start() + 1

    backward = text.rfind(" ", safe_min, safe_target)
    if backward >= 0:
        return backward + 1

    return safe_target


def _chunk_page(
    text: str,
    page_number: int,
    profile: ChunkingProfile,
    doc_meta: Mapping[str, Any],
) -> List[ChunkDraft]:
    drafts: List[ChunkDraft] = []
    n = len(text)
    overlap = profile.overlap_chars
    start = 0
    chunk_index = 0

    while start < n:
        end = find_chunk_end(
            text,
            start,
            start + profile.min_chars,
            start + profile.target_chars,
            start + profile.max_chars,
        )
        piece = text[start:end].strip()
        if piece:
            drafts.append(
                ChunkDraft(
                    page_number=page_number,
                    chunk_index=chunk_index,
                    text=piece,
                    token_count=estimate_tokens(piece),
                    metadata={
                        **doc_meta,
                        "chunking_version": profile.version,
                        "char_start": start,
                        "char_end": end,
                    },
                )
            )
            chunk_index += 1

        if end >= n:
            break
        start = max(start + 1, end - overlap)

    return drafts


def chunk_text(
    raw_text: str,
    chunking_version: str = DEFAULT_CHUNKING_VERSION,
    doc_meta: Optional[Mapping[str, Any]] = None,
) -> List[ChunkDraft]:
    """
    Divide el texto extraído de un documento en chunks ordenados.

    Args:
        raw_text: texto completo; en versiones por página, '\\f' separa páginas
        chunking_version: tag registrado en CHUNKING_PROFILES
        doc_meta: metadatos del documento que se copian a cada chunk

    Returns:
        Lista de ChunkDraft. Vacía si el texto está vacío o es solo espacio.
    """
    if not isinstance(raw_text, str):
        raise ValidationError(f"se esperaba str, llegó {type(raw_text).__name__}", path="raw_text")
    if doc_meta is not None and not isinstance(doc_meta, Mapping):
        raise ValidationError("doc_meta debe ser un dict", path="doc_meta")

    profile = get_chunking_profile(chunking_version)
    meta: Dict[str, Any] = dict(doc_meta or {})

    if not profile.split_pages:
        text = normalize_text(raw_text.replace(PAGE_BREAK, "\n\n"))
        if not text:
            return []
        return _chunk_page(text, 1, profile, meta)

    drafts: List[ChunkDraft] = []
    for page_number, page in enumerate(raw_text.split(PAGE_BREAK), start=1):
        text = normalize_text(page)
        if text:
            drafts.extend(_chunk_page(text, page_number, profile, meta))
    return drafts
