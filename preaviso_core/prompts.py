"""
Armado de prompts (system/user) para el asistente de preaviso.

Composición determinista de texto: mismos argumentos -> mismo string.
El "dato prioritario" es siempre el primer elemento de la lista de faltantes.
"""
import json
import logging
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from utils.errors import ValidationError
from utils.prompt_loader import load_latest_prompt, prompt_version_from_filename

from .config import MAX_DOCUMENT_SNIPPETS, MAX_HISTORY_MESSAGES, PROMPT_FOLDER, SYSTEM_PROMPT_PATTERN, TRAMITE_NAME
from .models import PreavisoStateSnapshot
from .schema import STAGES, field_label

logger = logging.getLogger(__name__)

NOT_DETECTED = "No detectado"


def _dig(value: Any, *path: Any) -> Any:
    """Acceso tolerante: context['a'][0]['b'] -> None si algo no existe o no tiene la forma esperada."""
    for key in path:
        if isinstance(key, int):
            if not isinstance(value, list) or len(value) <= key:
                return None
            value = value[key]
        else:
            if not isinstance(value, Mapping):
                return None
            value = value.get(key)
    return value


def _text(value: Any) -> Optional[str]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _first(*values: Any, default: str = NOT_DETECTED) -> str:
    for v in values:
        t = _text(v)
        if t:
            return t
    return default


def _message_parts(message: Any) -> Tuple[str, str]:
    if isinstance(message, Mapping):
        return str(message.get("role") or ""), str(message.get("content") or "")
    return str(getattr(message, "role", "") or ""), str(getattr(message, "content", "") or "")


def _check_str_list(value: Any, name: str) -> None:
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ValidationError("se esperaba lista de str", path=name)


def _party_name(context: Mapping[str, Any], role: str) -> str:
    return _first(
        _dig(context, role, 0, "persona_fisica", "nombre"),
        _dig(context, role, 0, "persona_moral", "denominacion_social"),
    )


def _forma_de_pago(context: Mapping[str, Any]) -> str:
    creditos = context.get("creditos")
    if not isinstance(creditos, list):
        return "No confirmada"
    return "Contado" if not creditos else "Crédito"


def _folio_label(candidate: Any) -> str:
    if isinstance(candidate, Mapping):
        return str(candidate.get("folio") or "")
    return str(candidate)


def build_detected_summary(context: Mapping[str, Any], missing_fields: Sequence[str]) -> str:
    """Bloque INFORMACIÓN YA DETECTADA (una línea por dato)."""
    docs = context.get("documentosProcesados")
    inscripcion = isinstance(docs, list) and any(
        isinstance(d, Mapping) and d.get("tipo") == "inscripcion" for d in docs
    )
    lines = [
        "INFORMACIÓN YA DETECTADA:",
        f"- Folio real: {_first(_dig(context, 'folios', 'selection', 'selected_folio'), _dig(context, 'inmueble', 'folio_real'))}",
        f"- Hoja de inscripción procesada: {'Sí' if inscripcion else 'No'}",
        f"- Vendedor: {_party_name(context, 'vendedores')}",
        f"- Comprador: {_party_name(context, 'compradores')}",
        f"- Estado civil del comprador: {_first(_dig(context, 'compradores', 0, 'persona_fisica', 'estado_civil'))}",
        f"- Cónyuge del comprador: {_first(_dig(context, 'compradores', 0, 'persona_fisica', 'conyuge', 'nombre'))}",
        f"- Forma de pago: {_forma_de_pago(context)}",
        f"- Institución de crédito: {_first(_dig(context, 'creditos', 0, 'institucion'), default='No detectada')}",
    ]
    if missing_fields:
        priority = missing_fields[0]
        label = field_label(priority)
        suffix = f" ({label})" if label != priority else ""
        lines.append(f"Dato prioritario a resolver: {priority}{suffix}")
    return "\n".join(lines)


def generate_user_prompt(
    context: Any,
    conversation_history: Any,
    missing_fields: Any,
    is_greeting: bool = False,
    has_multiple_folios: bool = False,
    folio_candidates: Optional[List[Any]] = None,
) -> str:
    """
    Prompt de usuario para el turno actual.

    Args:
        context: contexto del preaviso (dict JSON)
        conversation_history: lista de mensajes {role, content}
        missing_fields: faltantes en orden de prioridad
        is_greeting: el último mensaje fue un saludo
        has_multiple_folios: se detectaron varios folios y hay que pedir cuál usar
        folio_candidates: folios detectados (str o {"folio": ...})

    Raises:
        ValidationError: si algún argumento no tiene el tipo esperado
    """
    if not isinstance(context, Mapping):
        raise ValidationError("el contexto debe ser un objeto", path="context")
    if not isinstance(conversation_history, (list, tuple)):
        raise ValidationError("se esperaba lista de mensajes", path="conversation_history")
    _check_str_list(missing_fields, "missing_fields")
    if folio_candidates is not None and not isinstance(folio_candidates, (list, tuple)):
        raise ValidationError("se esperaba lista", path="folio_candidates")

    last_message = _message_parts(conversation_history[-1])[1] if conversation_history else ""
    priority = missing_fields[0] if missing_fields else "lo siguiente"

    if is_greeting:
        instruction = (
            f"El usuario acaba de saludar ({last_message}).\n"
            "TU OBJETIVO: Devuelve el saludo con cortesía y, de forma fluida, invita a continuar "
            f"con el trámite preguntando por el dato faltante: {priority}.\n"
            "NO seas seco. Sugiere subir documento si aplica. NO uses negritas (**)."
        )
    else:
        instruction = f'Último mensaje del usuario: "{last_message}"'

    history = "\n".join(
        "{}: {}".format(*_message_parts(m)) for m in conversation_history[-MAX_HISTORY_MESSAGES:]
    )

    sections = [
        "Contexto actual:",
        json.dumps(context, ensure_ascii=False, indent=2, sort_keys=True, default=str),
        "",
        instruction,
        "",
        f"Historial reciente (últimos {MAX_HISTORY_MESSAGES} mensajes):",
        history,
        "",
    ]
    if has_multiple_folios:
        folios = ", ".join(_folio_label(f) for f in (folio_candidates or []))
        sections += [
            "IMPORTANTE: Se detectaron múltiples folios reales en el documento. "
            "Debes preguntar al usuario cuál folio va a utilizar.",
            f"Folios detectados: {folios}",
            "",
        ]
    sections += [
        build_detected_summary(context, missing_fields),
        "",
        "REGLAS:",
        "- Si un dato ya está detectado arriba, NO lo vuelvas a pedir.",
        "- RFC y CURP son OPCIONALES: no los pidas.",
        "- Si el usuario hizo una pregunta, respóndela primero y luego pide el dato faltante.",
        "",
        f'Genera UNA pregunta natural, cortés y amable en español para obtener "{priority}".',
    ]
    return "\n".join(sections)


def build_system_diagnostic(snapshot: PreavisoStateSnapshot) -> str:
    titles = {s.key: s.title for s in STAGES}
    lines = [f"Estado actual: {snapshot.current_state} ({snapshot.state_status})"]
    for key, status in snapshot.stage_status.items():
        lines.append(f"- {titles.get(key, key)}: {status}")
    if snapshot.blocking_reasons:
        lines.append(f"BLOQUEOS: {', '.join(snapshot.blocking_reasons)}")
    return "\n".join(lines)


def _snippet_text(snippet: Any) -> str:
    if isinstance(snippet, Mapping):
        return str(snippet.get("text") or snippet.get("content") or "")
    return str(snippet)


def build_document_context(document_snippets: Optional[Sequence[Any]]) -> str:
    texts = [t for t in (_snippet_text(s).strip() for s in (document_snippets or [])) if t]
    if not texts:
        return ""
    lines = [
        "INFORMACIÓN EXTRAÍDA DE DOCUMENTOS:",
        "Fragmentos de los documentos del expediente (NO inventes información que no esté aquí):",
    ]
    lines += [f'- "{t}"' for t in texts[:MAX_DOCUMENT_SNIPPETS]]
    return "\n".join(lines)


def generate_system_prompt(
    snapshot: PreavisoStateSnapshot,
    knowledge_context: str = "",
    document_snippets: Optional[Sequence[Any]] = None,
    tramite_name: str = TRAMITE_NAME,
) -> Tuple[str, str]:
    """Llena la plantilla más reciente Prompts/Preaviso/system_prompt_vN.txt. Regresa (prompt, versión)."""
    if not isinstance(snapshot, PreavisoStateSnapshot):
        raise ValidationError("se esperaba PreavisoStateSnapshot", path="snapshot")
    if not isinstance(knowledge_context, str):
        raise ValidationError("se esperaba str", path="knowledge_context")
    if document_snippets is not None and not isinstance(document_snippets, (list, tuple)):
        raise ValidationError("se esperaba lista", path="document_snippets")

    template, filename = load_latest_prompt(PROMPT_FOLDER, SYSTEM_PROMPT_PATTERN, with_filename=True)
    if template is None:
        raise RuntimeError(f"No se encontró plantilla {SYSTEM_PROMPT_PATTERN}_vN.txt en Prompts/{PROMPT_FOLDER}")

    prompt = (
        template.replace("{tramite_name}", tramite_name)
        .replace("{knowledge_context}", knowledge_context)
        .replace("{document_context}", build_document_context(document_snippets))
        .replace("{system_diagnostic}", build_system_diagnostic(snapshot))
        .replace("{missing_fields}", json.dumps(snapshot.required_missing, ensure_ascii=False))
        .replace("{priority_field}", snapshot.priority_field or "ninguno")
        .replace("{current_state}", snapshot.current_state)
    )
    return prompt, prompt_version_from_filename(filename)


def current_prompt_version() -> str:
    """Versión (vN) de la plantilla de sistema que se usaría ahora."""
    _, filename = load_latest_prompt(PROMPT_FOLDER, SYSTEM_PROMPT_PATTERN, with_filename=True)
    return prompt_version_from_filename(filename)
