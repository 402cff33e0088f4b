"""
Esquema explícito del contexto de preaviso.

El contexto es JSON parcial: cualquier sub-objeto puede faltar. Aquí se declara,
por ruta, qué cuenta como "ausente" y qué default aplica, para que el cálculo de
faltantes no dependa de revisiones sueltas.

Semántica de ausencia (todas las rutas):
    - None, "" o solo espacios  -> ausente
    - lista vacía               -> ausente (salvo `creditos`, ver abajo)

Defaults y casos especiales:
    - tipoOperacion ausente          -> "compraventa"
    - tipo_persona ausente           -> se infiere si hay exactamente uno de
                                        persona_fisica / persona_moral;
                                        con ambos, persona_moral si la
                                        denominación tiene forma de sociedad
    - nombre de persona física       -> uno que no parece nombre (ver
                                        validation.is_valid_name) cuenta como ausente
    - estado civil fuera del catálogo -> cuenta como ausente
    - cónyuge listado como comprador -> persona_fisica, no se le pide estado civil
    - creditos ausente (None)        -> forma de pago NO confirmada
      creditos == []                 -> contado confirmado
    - inmueble.existe_hipoteca       -> tri-estado; sin respuesta explícita se
                                        toma True si el registro lo indica o ya hay
                                        gravámenes capturados, si no queda desconocido
    - folio real                     -> si los documentos procesados traen
                                        candidatos, solo cuenta una selección
                                        confirmada que esté entre ellos; si no hay
                                        candidatos cuenta inmueble.folio_real
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from utils.errors import ValidationError

from .validation import infer_tipo_persona, normalize_estado_civil, normalize_for_match

TIPOS_PERSONA = ("persona_fisica", "persona_moral")
TIPO_OPERACION_DEFAULT = "compraventa"
INSCRIPCION_TIPOS = ("inscripcion", "escritura", "titulo")

_FOLIO_DIGITS_RE = re.compile(r"\d{6,}")
_INDEX_RE = re.compile(r"\[\d+\]")


# ----------------------------
# Declaración de campos y etapas
# ----------------------------

@dataclass(frozen=True)
class FieldSpec:
    path: str  # plantilla con [i] para listas
    label: str


@dataclass(frozen=True)
class StageSpec:
    key: str
    title: str
    fields: Tuple[FieldSpec, ...] = ()


# Orden fijo: inmueble -> partes -> pago / créditos -> gravámenes -> actos notariales.
# El primer faltante en este orden es el dato prioritario.
# Toda ruta que reporta state.py debe estar declarada en la etapa que la reporta.
STAGES: Tuple[StageSpec, ...] = (
    StageSpec("collecting_property_data", "Inmueble y Registro", (
        FieldSpec("inmueble.folio_real", "Folio real del inmueble"),
        FieldSpec("inmueble.seccion", "Sección registral"),
        FieldSpec("inmueble.partidas", "Partida(s) registral(es)"),
        FieldSpec("inmueble.direccion", "Dirección del inmueble"),
    )),
    StageSpec("collecting_seller_data", "Vendedor(es)", (
        FieldSpec("vendedores[]", "Vendedor(es)"),
        FieldSpec("vendedores[i].tipo_persona", "Tipo de persona del vendedor"),
        FieldSpec("vendedores[i].persona_fisica.nombre", "Nombre del vendedor"),
        FieldSpec("vendedores[i].persona_moral.denominacion_social", "Denominación social del vendedor"),
        FieldSpec("vendedores[i].credito_vendedor.institucion", "Institución del crédito del vendedor"),
        FieldSpec("vendedores[i].credito_vendedor.numero_credito", "Número de crédito del vendedor"),
    )),
    StageSpec("collecting_buyer_data", "Comprador(es)", (
        FieldSpec("compradores[]", "Comprador(es)"),
        FieldSpec("compradores[i].tipo_persona", "Tipo de persona del comprador"),
        FieldSpec("compradores[i].persona_fisica.nombre", "Nombre del comprador"),
        FieldSpec("compradores[i].persona_moral.denominacion_social", "Denominación social del comprador"),
        FieldSpec("compradores[i].persona_fisica.estado_civil", "Estado civil del comprador"),
        FieldSpec("compradores[i].persona_fisica.conyuge.nombre", "Nombre del cónyuge"),
    )),
    StageSpec("confirming_payment_method", "Operación y Forma de Pago", (
        FieldSpec("creditos", "Forma de pago (contado o crédito)"),
    )),
    StageSpec("collecting_credit_data", "Crédito del Comprador", (
        FieldSpec("creditos[i].institucion", "Institución de crédito"),
        FieldSpec("creditos[i].participantes[]", "Participantes del crédito"),
    )),
    StageSpec("collecting_encumbrance_data", "Gravámenes / Hipoteca", (
        FieldSpec("inmueble.existe_hipoteca", "¿Existe hipoteca o gravamen?"),
        FieldSpec("gravamenes[]", "Gravamen(es)"),
        FieldSpec("gravamenes[i].institucion", "Acreedor del gravamen"),
        FieldSpec("gravamenes[i].cancelacion_confirmada", "¿La cancelación ya está inscrita?"),
    )),
    StageSpec("reviewing_notarial_acts", "Actos notariales"),
)

READY_STATE = "ready_to_generate"

FIELD_INDEX: Dict[str, FieldSpec] = {f.path: f for s in STAGES for f in s.fields}


def field_template(path: str) -> str:
    """'compradores[0].persona_fisica.nombre' -> 'compradores[i].persona_fisica.nombre'"""
    return _INDEX_RE.sub("[i]", path)


def field_label(path: str) -> str:
    spec = FIELD_INDEX.get(field_template(path)) or FIELD_INDEX.get(path)
    return spec.label if spec else path


# ----------------------------
# Normalización
# ----------------------------

def text_or_none(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    s = str(value).strip()
    return s or None


def digits_only(value: Any) -> Optional[str]:
    d = re.sub(r"\D", "", str(value)) if value is not None else ""
    return d or None


def unique_strings(values: List[Any]) -> List[str]:
    seen = set()
    out: List[str] = []
    for v in values:
        s = text_or_none(v)
        if s is None or s in seen:
            continue
        seen.add(s)
        out.append(s)
    return out


def extract_folios(value: Any) -> List[str]:
    """'1764668, 1764669' -> ['1764668', '1764669']; sin dígitos largos regresa el texto."""
    s = text_or_none(value)
    if s is None:
        return []
    found = unique_strings(_FOLIO_DIGITS_RE.findall(s))
    return found or [s]


def registry_indicates_encumbrance(value: Any) -> bool:
    """Texto del registro sobre gravámenes -> True solo con señal positiva clara."""
    if value is True:
        return True
    if value is None or value is False:
        return False
    s = str(value).strip().lower()
    if not s or s in ("null", "ninguno", "ninguna"):
        return False
    mentions = re.search(r"\b(gravamen|grav[aá]menes|hipoteca|embargo)\b", s)
    if mentions and re.search(r"\b(sin|no)\b", s):
        return False
    return bool(mentions)


# ----------------------------
# Hechos derivados del contexto
# ----------------------------

@dataclass
class PartyFacts:
    role: str  # vendedores | compradores
    index: int
    tipo_persona: Optional[str]
    nombre: Optional[str]
    estado_civil: Optional[str] = None
    conyuge_nombre: Optional[str] = None
    es_conyuge: bool = False
    tiene_credito: bool = False
    credito_institucion: Optional[str] = None
    credito_numero: Optional[str] = None
    titular_confirmado: bool = False
    curp: Optional[str] = None
    rfc: Optional[str] = None

    @property
    def prefix(self) -> str:
        return f"{self.role}[{self.index}]"

    @property
    def name_path(self) -> str:
        if self.tipo_persona == "persona_moral":
            return f"{self.prefix}.persona_moral.denominacion_social"
        return f"{self.prefix}.persona_fisica.nombre"


@dataclass
class PreavisoFacts:
    tipo_operacion: str
    creditos_provided: bool
    creditos: List[Mapping[str, Any]]
    folio_real: Optional[str]
    folio_candidates: List[str]
    folio_selected: Optional[str]
    folio_confirmed: bool
    seccion: Optional[str]
    partidas: List[str]
    partida_candidates: List[str]
    partidas_seleccionadas: List[str]
    direccion: Optional[str]
    titular_registral: Optional[str]
    vendedores: List[PartyFacts]
    compradores: List[PartyFacts]
    gravamenes: List[Mapping[str, Any]]
    existe_hipoteca: Optional[bool]
    actos_declarados: Dict[str, Any] = field(default_factory=dict)


def _require_mapping(value: Any, path: str, allow_none: bool = True) -> Mapping[str, Any]:
    if value is None and allow_none:
        return {}
    if not isinstance(value, Mapping):
        raise ValidationError(f"se esperaba objeto, llegó {type(value).__name__}", path=path)
    return value


def _require_list(value: Any, path: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f"se esperaba lista, llegó {type(value).__name__}", path=path)
    for i, item in enumerate(value):
        _require_mapping(item, f"{path}[{i}]", allow_none=False)
    return value


def _party(raw: Mapping[str, Any], role: str, index: int) -> PartyFacts:
    path = f"{role}[{index}]"
    pf = _require_mapping(raw.get("persona_fisica"), f"{path}.persona_fisica")
    pm = _require_mapping(raw.get("persona_moral"), f"{path}.persona_moral")

    tipo = text_or_none(raw.get("tipo_persona"))
    if tipo is not None and tipo not in TIPOS_PERSONA:
        raise ValidationError(f"tipo_persona inválido '{tipo}'", path=f"{path}.tipo_persona")
    if tipo is None:
        if pf and not pm:
            tipo = "persona_fisica"
        elif pm and not pf:
            tipo = "persona_moral"
        elif pm and pf:
            # Ambos capturados: decide la denominación si tiene forma de sociedad
            tipo = infer_tipo_persona(text_or_none(pm.get("denominacion_social")))

    if tipo == "persona_moral":
        nombre = text_or_none(pm.get("denominacion_social"))
    else:
        nombre = text_or_none(pf.get("nombre"))

    conyuge = _require_mapping(pf.get("conyuge"), f"{path}.persona_fisica.conyuge")
    credito = _require_mapping(raw.get("credito_vendedor"), f"{path}.credito_vendedor")
    return PartyFacts(
        role=role,
        index=index,
        tipo_persona=tipo,
        nombre=nombre,
        estado_civil=normalize_estado_civil(pf.get("estado_civil")),
        conyuge_nombre=text_or_none(conyuge.get("nombre")),
        tiene_credito=raw.get("tiene_credito") is True,
        credito_institucion=text_or_none(credito.get("institucion")),
        credito_numero=text_or_none(credito.get("numero_credito")),
        titular_confirmado=raw.get("titular_registral_confirmado") is True,
        curp=text_or_none(pf.get("curp")),
        rfc=text_or_none(pf.get("rfc")) or text_or_none(pm.get("rfc")),
    )


def _inscripcion_infos(context: Mapping[str, Any]) -> List[Mapping[str, Any]]:
    docs = _require_list(context.get("documentosProcesados"), "documentosProcesados")
    relevant = [d for d in docs if d.get("tipo") in INSCRIPCION_TIPOS]
    # La hoja de inscripción va primero
    relevant.sort(key=lambda d: 0 if d.get("tipo") == "inscripcion" else 1)
    return [
        _require_mapping(d.get("informacionExtraida"), "documentosProcesados[].informacionExtraida")
        for d in relevant
    ]


def _first_text(infos: List[Mapping[str, Any]], *keys: str) -> Optional[str]:
    for info in infos:
        cur: Any = info
        for k in keys:
            cur = cur.get(k) if isinstance(cur, Mapping) else None
        s = text_or_none(cur)
        if s:
            return s
    return None


def _direccion_text(value: Any) -> Optional[str]:
    if isinstance(value, Mapping):
        calle = text_or_none(value.get("calle"))
        if not calle:
            return None
        parts = [calle, text_or_none(value.get("numero")), text_or_none(value.get("colonia"))]
        return " ".join(p for p in parts if p)
    return text_or_none(value)


def derive_facts(context: Any) -> PreavisoFacts:
    """Lee el contexto (sin mutarlo) y resuelve los defaults declarados arriba."""
    ctx = _require_mapping(context, "context", allow_none=False)
    inmueble = _require_mapping(ctx.get("inmueble"), "inmueble")
    folios_model = _require_mapping(ctx.get("folios"), "folios")
    selection = _require_mapping(folios_model.get("selection"), "folios.selection")
    infos = _inscripcion_infos(ctx)

    # Folios
    from_model = unique_strings([
        digits_only(c.get("folio")) if isinstance(c, Mapping) else digits_only(c)
        for c in (folios_model.get("candidates") or [])
    ])
    from_docs: List[str] = []
    for info in infos:
        for v in info.get("foliosReales") or []:
            from_docs.extend(extract_folios(v))
        from_docs.extend(extract_folios(info.get("folioReal")))
        for f in info.get("foliosConInfo") or []:
            if isinstance(f, Mapping):
                from_docs.extend(extract_folios(f.get("folio")))
    candidates = from_model or unique_strings(from_docs)

    selected = text_or_none(selection.get("selected_folio"))
    confirmed = selection.get("confirmed_by_user") is True
    if candidates:
        sel_digits = digits_only(selected)
        in_candidates = bool(selected) and any(
            (digits_only(c) == sel_digits) if sel_digits else (c == selected) for c in candidates
        )
        folio_real = selected if (confirmed and in_candidates) else None
    else:
        folio_real = text_or_none(inmueble.get("folio_real"))

    # Partidas
    raw_partidas = inmueble.get("partidas")
    if raw_partidas is not None and not isinstance(raw_partidas, list):
        raise ValidationError("se esperaba lista", path="inmueble.partidas")
    seleccionadas = unique_strings(raw_partidas or ([inmueble.get("partida")] if inmueble.get("partida") else []))
    doc_titulo: List[Any] = []
    doc_partidas: List[Any] = []
    for info in infos:
        doc_titulo.extend(info.get("partidasTitulo") or [])
        doc_partidas.extend(info.get("partidas") or [])
        if info.get("partida"):
            doc_partidas.append(info.get("partida"))
    partida_candidates = unique_strings(doc_titulo or doc_partidas)
    partidas = unique_strings(seleccionadas + doc_partidas)

    # Partes
    vendedores = [_party(v, "vendedores", i) for i, v in enumerate(_require_list(ctx.get("vendedores"), "vendedores"))]
    compradores = [_party(c, "compradores", i) for i, c in enumerate(_require_list(ctx.get("compradores"), "compradores"))]
    if compradores and compradores[0].conyuge_nombre:
        target = normalize_for_match(compradores[0].conyuge_nombre)
        for c in compradores[1:]:
            if c.nombre and normalize_for_match(c.nombre) == target:
                c.es_conyuge = True
                if c.tipo_persona is None:
                    c.tipo_persona = "persona_fisica"

    # Pago / créditos
    creditos_raw = ctx.get("creditos")
    creditos = _require_list(creditos_raw, "creditos")

    # Gravámenes
    gravamenes = _require_list(ctx.get("gravamenes"), "gravamenes")
    declared = inmueble.get("existe_hipoteca")
    if isinstance(declared, bool):
        existe_hipoteca: Optional[bool] = declared
    elif gravamenes or any(registry_indicates_encumbrance(i.get("gravamenes")) for i in infos):
        existe_hipoteca = True
    else:
        existe_hipoteca = None

    return PreavisoFacts(
        tipo_operacion=text_or_none(ctx.get("tipoOperacion")) or TIPO_OPERACION_DEFAULT,
        creditos_provided=creditos_raw is not None,
        creditos=creditos,
        folio_real=folio_real,
        folio_candidates=candidates,
        folio_selected=selected,
        folio_confirmed=confirmed,
        seccion=text_or_none(inmueble.get("seccion")) or _first_text(infos, "seccion"),
        partidas=partidas,
        partida_candidates=partida_candidates,
        partidas_seleccionadas=seleccionadas,
        direccion=_direccion_text(inmueble.get("direccion"))
        or _first_text(infos, "ubicacion")
        or _first_text(infos, "direccion"),
        titular_registral=_first_text(infos, "propietario", "nombre"),
        vendedores=vendedores,
        compradores=compradores,
        gravamenes=gravamenes,
        existe_hipoteca=existe_hipoteca,
        actos_declarados=dict(_require_mapping(ctx.get("actosNotariales"), "actosNotariales")),
    )
