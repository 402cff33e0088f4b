"""
Selección determinista de "knowledge" oficial para el prompt del preaviso.

- Fuente: store inyectado (tabla knowledge_chunks en Supabase) o, si no hay
  store o no regresa nada, el set de respaldo incluido aquí.
- Selección: always_include + chunks cuyos tags coinciden con los faltantes,
  sin duplicados, ordenados por (priority, chunk_key), máximo 8.
- Snapshot con hash reproducible para auditoría.
"""
import hashlib
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Protocol

from utils.errors import ValidationError
from utils.supabase_client import get_supabase_client

from .config import (
    KNOWLEDGE_CHUNKS_TABLE,
    KNOWLEDGE_MAX_SELECTED,
    KNOWLEDGE_SECTION_MARKER,
    KNOWLEDGE_TOP_FALLBACK,
    TRAMITE_PREAVISO,
)
from .models import KnowledgeChunk, KnowledgeContext, KnowledgeSnapshot

logger = logging.getLogger(__name__)

FALLBACK_VERSION = "2.0.0-fallback"

FALLBACK_CHUNKS: Dict[str, List[KnowledgeChunk]] = {
    TRAMITE_PREAVISO: [
        KnowledgeChunk(
            id="fallback-persona-y-tono",
            chunk_key="persona_y_tono",
            title="Persona y tono del asistente",
            content=(
                "Actúa como abogado notarial de confianza: profesional, claro y empático. "
                "Responde en texto plano. Si el usuario saluda, saluda de vuelta. Si pregunta algo, "
                "responde primero su duda y luego guía el siguiente dato faltante."
            ),
            tags=["general", "tono"],
            priority=10,
            always_include=True,
            version=FALLBACK_VERSION,
        ),
        KnowledgeChunk(
            id="fallback-captura-inteligente",
            chunk_key="captura_inteligente",
            title="Reglas de captura inteligente",
            content=(
                "Solo pide datos realmente faltantes según el estado del sistema. Si un dato ya existe "
                "en contexto o proviene de documento procesado, no lo vuelvas a pedir. Acepta datos "
                "fuera de orden y correcciones."
            ),
            tags=["general", "missing"],
            priority=20,
            always_include=True,
            version=FALLBACK_VERSION,
        ),
        KnowledgeChunk(
            id="fallback-inmueble-registro",
            chunk_key="inmueble_registro",
            title="Inmueble y registro",
            content=(
                "El folio real, la sección y las partidas salen de la hoja de inscripción. Si el documento "
                "trae varios folios, pide al usuario que elija uno y confírmalo antes de continuar."
            ),
            tags=["inmueble"],
            priority=30,
            version=FALLBACK_VERSION,
        ),
        KnowledgeChunk(
            id="fallback-prohibiciones",
            chunk_key="prohibiciones",
            title="Preguntas prohibidas",
            content=(
                "No preguntes por operación distinta de compraventa, firmantes/apoderados/representantes, "
                "estatus de autorización del crédito, tipo de crédito ni inmuebles adicionales fuera del "
                "folio seleccionado."
            ),
            tags=["general", "credito"],
            priority=40,
            always_include=True,
            version=FALLBACK_VERSION,
        ),
        KnowledgeChunk(
            id="fallback-partes",
            chunk_key="partes_y_conyuge",
            title="Vendedores, compradores y cónyuge",
            content=(
                "El vendedor debe coincidir con el titular registral. Del comprador persona física se "
                "requiere estado civil; si está casado, pide el nombre del cónyuge."
            ),
            tags=["vendedores", "compradores"],
            priority=50,
            version=FALLBACK_VERSION,
        ),
        KnowledgeChunk(
            id="fallback-credito-gravamen",
            chunk_key="credito_y_gravamenes",
            title="Créditos y gravámenes",
            content=(
                "Si la compra es con crédito, captura la institución y quiénes participan. Si el inmueble "
                "tiene hipoteca, captura el acreedor y si la cancelación ya está inscrita."
            ),
            tags=["credito", "gravamen"],
            priority=60,
            version=FALLBACK_VERSION,
        ),
    ],
}


class KnowledgeStore(Protocol):
    def get_active_chunks(self, tramite: str, scope: str) -> List[KnowledgeChunk]: ...


class SupabaseKnowledgeStore:
    """knowledge_chunks activos por (tramite, scope)."""

    def __init__(self, client=None, table: str = KNOWLEDGE_CHUNKS_TABLE):
        self._client = client
        self.table = table

    def get_active_chunks(self, tramite: str, scope: str) -> List[KnowledgeChunk]:
        client = self._client or get_supabase_client()
        if client is None:
            return []
        try:
            res = (
                client.table(self.table)
                .select("*")
                .eq("tramite", tramite)
                .eq("scope", scope)
                .eq("is_active", True)
                .order("priority")
                .execute()
            )
        except Exception as e:
            logger.error(f"[Knowledge] ❌ Error cargando knowledge_chunks: {e}")
            return []
        return [chunk_from_row(r) for r in (res.data or [])]


def chunk_from_row(row: Dict[str, Any]) -> KnowledgeChunk:
    meta = row.get("metadata") or {}
    return KnowledgeChunk(
        id=str(row["id"]),
        chunk_key=row["chunk_key"],
        title=row.get("title") or "",
        content=row.get("content") or "",
        tags=[str(t).lower() for t in (meta.get("tags") or [])],
        priority=int(row.get("priority") or 100),
        always_include=meta.get("always_include") is True,
        version=str(row.get("version") or "1"),
        content_hash=row.get("content_hash") or None,
    )


TAG_RULES = (
    (("folio", "partida", "inmueble", "direccion", "seccion"), "inmueble"),
    (("vendedor",), "vendedores"),
    (("comprador", "conyuge", "estado_civil"), "compradores"),
    (("credito",), "credito"),
    (("gravamen", "hipoteca"), "gravamen"),
    (("document",), "documentos"),
)


def infer_tags_from_missing(missing_fields: Iterable[str]) -> List[str]:
    """Tags (orden estable) a partir de las rutas faltantes; siempre incluye 'general'."""
    tags = ["general"]
    for path in missing_fields:
        p = path.lower()
        for needles, tag in TAG_RULES:
            if tag not in tags and any(n in p for n in needles):
                tags.append(tag)
    return tags


def _sort_key(c: KnowledgeChunk):
    return (c.priority, c.chunk_key, c.id)


def select_chunks(chunks: List[KnowledgeChunk], tags: List[str]) -> List[KnowledgeChunk]:
    if not chunks:
        return []
    wanted = set(tags)
    by_id: Dict[str, KnowledgeChunk] = {}
    for c in chunks:
        if c.always_include or wanted.intersection(t.lower() for t in c.tags):
            by_id.setdefault(c.id, c)
    selected = sorted(by_id.values(), key=_sort_key)
    if selected:
        return selected[:KNOWLEDGE_MAX_SELECTED]
    return sorted(chunks, key=_sort_key)[:KNOWLEDGE_TOP_FALLBACK]


def _sha256(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def compute_knowledge_hash(chunks: List[KnowledgeChunk]) -> str:
    base = "||".join(
        f"{c.id}|{c.chunk_key}|{c.version}|{c.content_hash or _sha256(c.content)}" for c in chunks
    )
    return _sha256(base)


def build_prompt_context(chunks: List[KnowledgeChunk]) -> str:
    if not chunks:
        return ""
    lines = [f"{i}. [{c.chunk_key}] {c.content}" for i, c in enumerate(chunks, start=1)]
    return "\n".join([KNOWLEDGE_SECTION_MARKER, *lines])


def build_knowledge_context(
    tramite: str,
    scope: str,
    prompt_version: str,
    missing_fields: Optional[List[str]] = None,
    store: Optional[KnowledgeStore] = None,
) -> KnowledgeContext:
    """
    Knowledge para el prompt + snapshot de auditoría.
    Todo el snapshot salvo `selected_at` depende solo de los argumentos y del contenido del store.
    """
    for name, value in (("tramite", tramite), ("scope", scope), ("prompt_version", prompt_version)):
        if not isinstance(value, str) or not value.strip():
            raise ValidationError("valor requerido", path=name)
    if missing_fields is not None and (
        not isinstance(missing_fields, list) or not all(isinstance(m, str) for m in missing_fields)
    ):
        raise ValidationError("se esperaba lista de str", path="missing_fields")

    tags = infer_tags_from_missing(missing_fields or [])
    db_chunks = store.get_active_chunks(tramite, scope) if store is not None else []
    source = "db" if db_chunks else "fallback"
    source_chunks = db_chunks or FALLBACK_CHUNKS.get(tramite, [])

    selected = select_chunks(list(source_chunks), tags)
    snapshot = KnowledgeSnapshot(
        tramite=tramite,
        scope=scope,
        prompt_version=prompt_version,
        knowledge_version=",".join(sorted({c.version for c in selected})),
        knowledge_hash=compute_knowledge_hash(selected),
        knowledge_chunk_ids=[c.id for c in selected],
        knowledge_chunk_keys=[c.chunk_key for c in selected],
        selection_reason=f"tags={','.join(tags)};source={source}",
        selected_at=datetime.now(timezone.utc).isoformat(),
    )
    return KnowledgeContext(prompt_context=build_prompt_context(selected), snapshot=snapshot)
