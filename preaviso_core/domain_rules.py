"""
Reglas de dominio que se validan antes de finalizar un preaviso.
Cualquier violación se reporta como DomainRuleViolationError (422), con `code` legible por máquina.
"""
import logging
from typing import Any

from utils.errors import DomainRuleViolationError

from .models import PreavisoStateSnapshot
from .schema import derive_facts
from .state import compute_preaviso_state

logger = logging.getLogger(__name__)


def ensure_can_finalize(context: Any) -> PreavisoStateSnapshot:
    """
    Verifica que el trámite se pueda cerrar.

    Returns:
        El snapshot de estado (completo y sin bloqueos).

    Raises:
        ValidationError: contexto malformado
        DomainRuleViolationError: COMPRADOR_SIN_DATOS_MINIMOS | PREAVISO_BLOQUEADO | PREAVISO_INCOMPLETO
    """
    facts = derive_facts(context)
    comprador = facts.compradores[0] if facts.compradores else None
    if comprador is None or not (comprador.nombre or comprador.curp or comprador.rfc):
        raise DomainRuleViolationError(
            "COMPRADOR_SIN_DATOS_MINIMOS",
            "El comprador principal requiere al menos nombre, CURP o RFC",
        )

    snapshot = compute_preaviso_state(context)
    if snapshot.blocking_reasons:
        logger.info(f"[DomainRules] Preaviso bloqueado: {snapshot.blocking_reasons}")
        raise DomainRuleViolationError(
            "PREAVISO_BLOQUEADO",
            "Hay conflictos por resolver antes de finalizar",
            {"blocking_reasons": snapshot.blocking_reasons},
        )
    if snapshot.required_missing:
        raise DomainRuleViolationError(
            "PREAVISO_INCOMPLETO",
            f"Faltan datos obligatorios (prioritario: {snapshot.priority_field})",
            {"required_missing": snapshot.required_missing},
        )
    return snapshot
