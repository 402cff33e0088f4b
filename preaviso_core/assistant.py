"""
Arma el turno del asistente de preaviso: estado -> knowledge -> prompts -> mensajes.
El LLM es externo; run_preaviso_turn solo envía los mensajes por utils.ai_calls.
"""
import logging
import re
from typing import Any, Dict, List, Optional

from utils.ai_calls import chat_completion, extract_message_text
from utils.errors import ValidationError

from .config import SCOPE_CHAT_GENERATION, TRAMITE_NAME, TRAMITE_PREAVISO
from .knowledge import KnowledgeStore, build_knowledge_context
from .models import PreavisoStateSnapshot, PreavisoTurn
from .prompts import current_prompt_version, generate_system_prompt, generate_user_prompt
from .schema import PreavisoFacts, derive_facts
from .state import state_from_facts

logger = logging.getLogger(__name__)

GREETING_RE = re.compile(
    r"^\s*(hola|buen[oa]s?\s*(d[ií]as|tardes|noches)?|qu[eé]\s+tal|saludos)\b[\s!.,¡]*$",
    re.IGNORECASE,
)

# Consulta full-text por tipo de faltante (primera coincidencia gana)
DOCUMENT_QUERIES = (
    (("folio_real", "partidas", "direccion", "seccion"), "antecedentes propiedad folio real partidas dirección inmueble"),
    (("vendedores",), "vendedor titular registral propietario"),
    (("estado_civil",), "estado civil matrimonio soltero casado"),
    (("compradores",), "comprador adquirente generales identificación"),
    (("creditos",), "precio forma de pago crédito institución bancaria"),
    (("hipoteca", "gravamen"), "gravamen hipoteca certificado libertad gravamen"),
)


def is_greeting(message: str) -> bool:
    return bool(GREETING_RE.match(message or ""))


def document_query_for_missing(missing_fields: List[str]) -> Optional[str]:
    for needles, query in DOCUMENT_QUERIES:
        if any(n in m for m in missing_fields for n in needles):
            return query
    return None


def _last_user_message(history: List[Any]) -> str:
    for m in reversed(history):
        if isinstance(m, dict) and m.get("role") == "user":
            return str(m.get("content") or "")
    return ""


def build_preaviso_turn(
    context: Any,
    conversation_history: List[Dict[str, Any]],
    knowledge_store: Optional[KnowledgeStore] = None,
    document_snippets: Optional[List[Any]] = None,
    facts: Optional[PreavisoFacts] = None,
    snapshot: Optional[PreavisoStateSnapshot] = None,
) -> PreavisoTurn:
    """
    Calcula el estado, selecciona knowledge y arma los mensajes OpenAI-style del turno.
    `facts` y `snapshot` se reciben ya calculados si el llamador los tiene (deben venir de `context`).

    Raises:
        ValidationError: si el contexto o el historial no tienen la forma esperada
    """
    if not isinstance(conversation_history, list):
        raise ValidationError("se esperaba lista de mensajes", path="conversation_history")

    if facts is None:
        facts = derive_facts(context)
    if snapshot is None:
        snapshot = state_from_facts(facts)
    knowledge = build_knowledge_context(
        TRAMITE_PREAVISO,
        SCOPE_CHAT_GENERATION,
        current_prompt_version(),
        missing_fields=snapshot.required_missing,
        store=knowledge_store,
    )
    system_prompt, prompt_version = generate_system_prompt(
        snapshot,
        knowledge_context=knowledge.prompt_context,
        document_snippets=document_snippets,
        tramite_name=TRAMITE_NAME,
    )
    user_prompt = generate_user_prompt(
        context,
        conversation_history,
        snapshot.required_missing,
        is_greeting=is_greeting(_last_user_message(conversation_history)),
        has_multiple_folios="multiple_folio_real_detected" in snapshot.blocking_reasons,
        folio_candidates=facts.folio_candidates,
    )
    logger.info(
        f"[PreavisoAssistant] 🧭 {snapshot.current_state} prioridad={snapshot.priority_field} "
        f"knowledge={knowledge.snapshot.knowledge_chunk_keys} prompt={prompt_version}"
    )
    return PreavisoTurn(
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        state=snapshot,
        knowledge=knowledge.snapshot,
        prompt_version=prompt_version,
    )


async def run_preaviso_turn(
    context: Any,
    conversation_history: List[Dict[str, Any]],
    knowledge_store: Optional[KnowledgeStore] = None,
    chunk_store: Any = None,
    **llm_params,
) -> PreavisoTurn:
    """
    Igual que build_preaviso_turn y además pide la respuesta al LLM (tool PREAVISO).
    Si hay `chunk_store` y el contexto trae tramiteId, agrega fragmentos de los documentos del trámite.
    """
    facts = derive_facts(context)
    snapshot = state_from_facts(facts)
    snippets: List[Any] = []
    tramite_id = context.get("tramiteId") if isinstance(context, dict) else None
    if chunk_store is not None and tramite_id:
        query = document_query_for_missing(snapshot.required_missing)
        if query:
            try:
                snippets = chunk_store.search_chunks(tramite_id, query)
            except Exception as e:
                logger.warning(f"[PreavisoAssistant] ⚠️ Búsqueda en documentos falló, se continúa sin fragmentos: {e}")

    turn = build_preaviso_turn(
        context, conversation_history, knowledge_store,
        document_snippets=snippets, facts=facts, snapshot=snapshot,
    )
    response = await chat_completion(turn.messages, tool="PREAVISO", **llm_params)
    turn.reply = extract_message_text(response)
    return turn
