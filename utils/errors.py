# utils/errors.py
# Taxonomía de errores compartida por el indexador y el núcleo del preaviso

from typing import Any, Dict, Optional


class NotariaError(Exception):
    """Base de los errores de dominio del proyecto."""


class NotFoundError(NotariaError):
    """El documento o trámite referenciado no existe (404, no se reintenta)."""

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} no encontrado: {entity_id}")


class ValidationError(NotariaError):
    """
    Entrada malformada para un componente puro (chunker, estado, prompts).
    `path` indica el campo problemático cuando aplica.
    """

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)


class CollaboratorFailure(NotariaError):
    """
    Falla de un colaborador externo (OCR, embeddings, storage).
    El orquestador la convierte en status=error con `reason`.
    """

    def __init__(self, stage: str, reason: str, cause: Optional[BaseException] = None):
        self.stage = stage
        self.reason = reason
        self.cause = cause
        super().__init__(f"[{stage}] {reason}")


class DomainRuleViolationError(NotariaError):
    """Violación de una regla de negocio al finalizar un trámite (422)."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}
