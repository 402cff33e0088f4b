"""
Cálculo determinista del estado del preaviso.

compute_preaviso_state(context) recorre las etapas de schema.STAGES en orden y
reporta TODOS los faltantes (rutas con índice) más las razones de bloqueo.
No contiene reglas legales de redacción: solo completitud y control de flujo.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from .config import PREAVISO_DEBUG
from .models import ActosNotariales, PreavisoStateSnapshot
from .schema import READY_STATE, STAGES, PartyFacts, PreavisoFacts, derive_facts, normalize_for_match
from .validation import is_valid_institution, is_valid_name, validate_estado_civil

logger = logging.getLogger(__name__)

# Resultado por etapa: (aplica, faltantes, bloqueos). aplica=None -> aún no se sabe.
StageEval = Tuple[Optional[bool], List[str], List[str]]


def _has_valid_name(p: PartyFacts) -> bool:
    # Denominaciones sociales no pasan por la heurística de nombres de persona
    if p.tipo_persona == "persona_moral":
        return bool(p.nombre)
    return is_valid_name(p.nombre)


def _eval_property(f: PreavisoFacts) -> StageEval:
    missing: List[str] = []
    blocking: List[str] = []
    if not f.folio_real:
        missing.append("inmueble.folio_real")
        if len(f.folio_candidates) > 1:
            blocking.append("multiple_folio_real_detected")
        elif len(f.folio_candidates) == 1:
            blocking.append("folio_real_confirmation_required")
    if not f.seccion:
        missing.append("inmueble.seccion")
    if not f.partidas:
        missing.append("inmueble.partidas")
    if len(f.partida_candidates) > 1 and len(f.partidas_seleccionadas) != 1:
        blocking.append("multiple_partida_detected")
    if not f.direccion:
        missing.append("inmueble.direccion")
    return True, missing, blocking


def _eval_sellers(f: PreavisoFacts) -> StageEval:
    missing: List[str] = []
    blocking: List[str] = []
    if not f.vendedores:
        if f.titular_registral:
            # El titular viene del registro: solo falta estructurarlo
            missing.append("vendedores[0].tipo_persona")
        else:
            missing.append("vendedores[]")
        return True, missing, blocking

    for v in f.vendedores:
        if v.tipo_persona is None:
            missing.append(f"{v.prefix}.tipo_persona")
        if not _has_valid_name(v):
            missing.append(v.name_path)
        if v.tiene_credito:
            if not v.credito_institucion:
                missing.append(f"{v.prefix}.credito_vendedor.institucion")
            if not v.credito_numero:
                missing.append(f"{v.prefix}.credito_vendedor.numero_credito")

    primero = f.vendedores[0]
    if (
        primero.nombre
        and f.titular_registral
        and not primero.titular_confirmado
        and normalize_for_match(primero.nombre) != normalize_for_match(f.titular_registral)
    ):
        blocking.append("vendedor_titular_mismatch")
    return True, missing, blocking


def _eval_buyers(f: PreavisoFacts) -> StageEval:
    missing: List[str] = []
    if not f.compradores:
        return True, ["compradores[]"], []

    for c in f.compradores:
        if c.tipo_persona is None:
            missing.append(f"{c.prefix}.tipo_persona")
        if not _has_valid_name(c):
            missing.append(c.name_path)
        if c.tipo_persona == "persona_fisica" and not c.es_conyuge:
            if validate_estado_civil(c.estado_civil) is not None:
                missing.append(f"{c.prefix}.persona_fisica.estado_civil")
            elif c.estado_civil == "casado" and not c.conyuge_nombre:
                missing.append(f"{c.prefix}.persona_fisica.conyuge.nombre")
    return True, missing, []


def _eval_payment(f: PreavisoFacts) -> StageEval:
    missing = [] if f.creditos_provided else ["creditos"]
    blocking = [] if f.tipo_operacion == "compraventa" else ["tipo_operacion_no_soportada"]
    return True, missing, blocking


def _eval_credits(f: PreavisoFacts) -> StageEval:
    if not f.creditos_provided:
        return None, [], []
    if not f.creditos:
        return False, [], []
    missing: List[str] = []
    blocking: List[str] = []
    for i, credito in enumerate(f.creditos):
        institucion = credito.get("institucion")
        if not isinstance(institucion, str) or not institucion.strip():
            missing.append(f"creditos[{i}].institucion")
        elif not is_valid_institution(institucion) and "credito_institucion_invalida" not in blocking:
            blocking.append("credito_institucion_invalida")
        if not credito.get("participantes"):
            missing.append(f"creditos[{i}].participantes[]")
    return True, missing, blocking


def _eval_encumbrances(f: PreavisoFacts) -> StageEval:
    blocking = ["hipoteca_contradictoria"] if (f.existe_hipoteca is False and f.gravamenes) else []
    if f.existe_hipoteca is None:
        return True, ["inmueble.existe_hipoteca"], blocking
    if f.existe_hipoteca is False:
        return (True if blocking else False), [], blocking
    if not f.gravamenes:
        return True, ["gravamenes[]"], blocking

    missing: List[str] = []
    for i, g in enumerate(f.gravamenes):
        institucion = g.get("institucion")
        if not isinstance(institucion, str) or not institucion.strip():
            missing.append(f"gravamenes[{i}].institucion")
        if not isinstance(g.get("cancelacion_confirmada"), bool):
            missing.append(f"gravamenes[{i}].cancelacion_confirmada")
    return True, missing, blocking


def derive_actos_notariales(f: PreavisoFacts) -> ActosNotariales:
    """Actos de la escritura; None donde todavía no hay información para decidir."""
    apertura = bool(f.creditos) if f.creditos_provided else None
    if f.existe_hipoteca is None:
        cancelacion = None
    elif f.existe_hipoteca is False and not f.gravamenes:
        cancelacion = False
    else:
        ya_inscrita = bool(f.gravamenes) and all(g.get("cancelacion_confirmada") is True for g in f.gravamenes)
        cancelacion = not ya_inscrita
    return ActosNotariales(
        compraventa=True,
        aperturaCreditoComprador=apertura,
        cancelacionHipoteca=cancelacion,
        cancelacionCreditoVendedor=bool(f.vendedores) and f.vendedores[0].tiene_credito,
    )


def _eval_acts(f: PreavisoFacts) -> StageEval:
    derived = derive_actos_notariales(f).model_dump()
    for key, declared in sorted(f.actos_declarados.items()):
        expected = derived.get(key)
        if isinstance(declared, bool) and expected is not None and declared != expected:
            return True, [], ["actos_notariales_inconsistentes"]
    # Sin datos suficientes para decidir algún acto la etapa sigue pendiente
    if any(v is None for v in derived.values()):
        return None, [], []
    return True, [], []


STAGE_EVALUATORS: Dict[str, Callable[[PreavisoFacts], StageEval]] = {
    "collecting_property_data": _eval_property,
    "collecting_seller_data": _eval_sellers,
    "collecting_buyer_data": _eval_buyers,
    "confirming_payment_method": _eval_payment,
    "collecting_credit_data": _eval_credits,
    "collecting_encumbrance_data": _eval_encumbrances,
    "reviewing_notarial_acts": _eval_acts,
}


def _stage_status(applies: Optional[bool], missing: List[str], blocking: List[str]) -> str:
    if blocking:
        return "blocked"
    if applies is None:
        return "pending"
    if applies is False:
        return "not_applicable"
    return "incomplete" if missing else "completed"


def compute_preaviso_state(context: Any) -> PreavisoStateSnapshot:
    """
    Estado del preaviso para un contexto (dict JSON). Nunca muta el contexto.

    Raises:
        ValidationError: si el contexto no respeta la forma del esquema
    """
    return state_from_facts(derive_facts(context))


def state_from_facts(facts: PreavisoFacts) -> PreavisoStateSnapshot:
    """Igual que compute_preaviso_state, para quien ya derivó los hechos del contexto."""
    required_missing: List[str] = []
    blocking_reasons: List[str] = []
    stage_status: Dict[str, str] = {}
    current_state: Optional[str] = None

    for stage in STAGES:
        applies, missing, blocking = STAGE_EVALUATORS[stage.key](facts)
        stage_status[stage.key] = _stage_status(applies, missing, blocking)
        required_missing.extend(missing)
        blocking_reasons.extend(b for b in blocking if b not in blocking_reasons)
        if current_state is None and (missing or blocking):
            current_state = stage.key

    if current_state is None:
        current_state = READY_STATE

    if blocking_reasons:
        status, actions = "blocked", ["CLARIFY_CONFLICT"]
    elif required_missing:
        status, actions = "incomplete", ["ASK_FOR_DATA"]
    else:
        status, actions = "complete", ["NO_ACTION"]

    snapshot = PreavisoStateSnapshot(
        current_state=current_state,
        state_status=status,
        required_missing=required_missing,
        blocking_reasons=blocking_reasons,
        stage_status=stage_status,
        allowed_actions=actions,
        actos_notariales=derive_actos_notariales(facts),
    )
    if PREAVISO_DEBUG:
        logger.info(f"[PreavisoState] {current_state} status={status} missing={required_missing[:5]} blocking={blocking_reasons}")
    return snapshot
