"""
Validaciones reutilizables de datos capturados en el chat (nombres, instituciones, estado civil)
"""
import re
import unicodedata
from typing import Any, Optional

ESTADOS_CIVILES = ("soltero", "casado", "divorciado", "viudo")

INVALID_NAME_WORDS = {
    "coacreditado", "coacreditada", "acreditado", "acreditada",
    "comprador", "compradora", "vendedor", "vendedora",
    "casado", "casada", "soltero", "soltera", "divorciado", "divorciada", "viudo", "viuda",
    "moral", "fisica", "persona",
    "como", "es", "sera", "si", "no",
}

INVALID_INSTITUTIONS = {
    "credito", "el credito", "hipoteca", "banco",
    "institucion", "entidad", "financiamiento",
}

PERSONA_MORAL_PATTERNS = [
    re.compile(r"\bs\.?\s*a\.?(?=\s|,|$)", re.IGNORECASE),
    re.compile(r"\bs\.?\s*a\.?\s*de\s*c\.?\s*v\.?", re.IGNORECASE),
    re.compile(r"\bsociedad\s+an[oó]nima", re.IGNORECASE),
    re.compile(r"\binmobiliaria\b", re.IGNORECASE),
    re.compile(r"\bdesarrolladora\b", re.IGNORECASE),
    re.compile(r"\bs\.?\s*a\.?\s*p\.?\s*i\.?", re.IGNORECASE),
    re.compile(r"\bsapi\b", re.IGNORECASE),
    re.compile(r"\bsociedad\s+de\s+capital\s+variable\b", re.IGNORECASE),
]


def normalize_for_match(value: Any) -> str:
    """Minúsculas, sin acentos ni puntuación, espacios colapsados."""
    s = unicodedata.normalize("NFD", str(value or ""))
    s = "".join(ch for ch in s if unicodedata.category(ch) != "Mn")
    s = s.lower()
    s = re.sub(r"[^a-z0-9\s]", " ", s)
    return re.sub(r"\s+", " ", s).strip()


def normalize_estado_civil(value: Any) -> Optional[str]:
    """Mapea 'Casada', 'casado(a)', 'SOLTERO' ... al valor canónico (por prefijo)."""
    s = normalize_for_match(value)
    if not s:
        return None
    for canonical in ESTADOS_CIVILES:
        if s.startswith(canonical[:-1]):
            return canonical
    return s


def is_valid_name(name: Optional[str]) -> bool:
    """
    Nombre de persona plausible: al menos 6 caracteres, sin corridas de 3+ dígitos,
    y (si es corto) sin palabras que delatan una respuesta y no un nombre.
    """
    if not isinstance(name, str):
        return False
    clean = name.strip()
    if len(clean) < 6 or re.search(r"\d{3,}", clean):
        return False
    normalized = normalize_for_match(clean)
    if normalized in INVALID_NAME_WORDS:
        return False
    if len(normalized) < 20 and set(normalized.split()) & INVALID_NAME_WORDS:
        return False
    return True


def is_valid_institution(institution: Optional[str]) -> bool:
    """Rechaza respuestas genéricas ('banco', 'el crédito') en lugar del nombre de la institución."""
    if not isinstance(institution, str):
        return False
    normalized = normalize_for_match(institution)
    return normalized not in INVALID_INSTITUTIONS and len(normalized) >= 3


def infer_tipo_persona(name: Optional[str]) -> Optional[str]:
    """'Inmobiliaria del Norte, S.A. de C.V.' -> 'persona_moral'; sin señal -> None."""
    if not isinstance(name, str) or not name.strip():
        return None
    return "persona_moral" if any(p.search(name) for p in PERSONA_MORAL_PATTERNS) else None


def validate_estado_civil(value: Optional[str]) -> Optional[str]:
    """Regresa un mensaje de error o None si el estado civil es válido."""
    normalized = normalize_estado_civil(value)
    if normalized not in ESTADOS_CIVILES:
        return f'Estado civil "{value}" no válido'
    return None
