# utils/activity_log.py
# Bitácora de actividad: eventos de indexado de documentos
# - Siempre escribe al debug log (JSON por línea)
# - Si hay Supabase configurado, inserta en activity_logs (best-effort)

import os
import logging
from typing import Any, Dict

from utils.debug_logger import log_debug_event
from utils.supabase_client import get_supabase_client

logger = logging.getLogger(__name__)

ACTIVITY_LOGS_TABLE = os.getenv("ACTIVITY_LOGS_TABLE", "activity_logs")
ACTIVITY_LOG_TO_SUPABASE = os.getenv("ACTIVITY_LOG_TO_SUPABASE", "1") == "1"


def _build_row(entry: Dict[str, Any]) -> Dict[str, Any]:
    data = {
        "documento_id": entry.get("documento_id"),
        "trace_id": entry.get("trace_id"),
        "stage": entry.get("stage"),
        "status": entry.get("status"),
        "duration_ms": entry.get("duration_ms"),
        **(entry.get("metadata") or {}),
    }
    return {
        "user_id": entry.get("user_id"),
        "session_id": None,
        "tramite_id": entry.get("tramite_id"),
        "category": "document_processing",
        "event_type": "document_indexing",
        "data": data,
    }


def log_document_indexing(entry: Dict[str, Any]) -> None:
    """
    Registra una etapa del indexado de un documento.

    Args:
        entry: dict con trace_id, user_id, documento_id, tramite_id,
               stage, status, duration_ms y metadata.
    """
    log_debug_event(
        "DocumentIndexer",
        entry.get("trace_id"),
        entry.get("documento_id"),
        f"{entry.get('stage')}:{entry.get('status')}",
        input_data={"tramite_id": entry.get("tramite_id"), "user_id": entry.get("user_id")},
        output_data={"duration_ms": entry.get("duration_ms"), **(entry.get("metadata") or {})},
    )

    if not ACTIVITY_LOG_TO_SUPABASE:
        return

    supabase = get_supabase_client()
    if not supabase:
        return

    try:
        supabase.table(ACTIVITY_LOGS_TABLE).insert(_build_row(entry)).execute()
    except Exception as e:
        # La bitácora nunca debe tumbar el indexado
        logger.error(f"[ActivityLog] ❌ Error guardando evento de indexado: {e}")
