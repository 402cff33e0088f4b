"""
Módulo preaviso_core - Estado, wizard, prompts y knowledge del preaviso de compraventa
"""
from .models import (
    ActosNotariales,
    KnowledgeChunk,
    KnowledgeContext,
    KnowledgeSnapshot,
    PreavisoStateSnapshot,
    PreavisoTurn,
    PreavisoWizardState,
    WizardStep,
)
from .state import compute_preaviso_state, derive_actos_notariales
from .wizard import compute_wizard_state, wizard_from_snapshot
from .domain_rules import ensure_can_finalize
from .validation import is_valid_name, is_valid_institution, infer_tipo_persona, validate_estado_civil
from .prompts import generate_system_prompt, generate_user_prompt
from .knowledge import SupabaseKnowledgeStore, build_knowledge_context, infer_tags_from_missing
from .assistant import build_preaviso_turn, run_preaviso_turn

__all__ = [
    "ActosNotariales",
    "KnowledgeChunk",
    "KnowledgeContext",
    "KnowledgeSnapshot",
    "PreavisoStateSnapshot",
    "PreavisoTurn",
    "PreavisoWizardState",
    "WizardStep",
    "compute_preaviso_state",
    "derive_actos_notariales",
    "compute_wizard_state",
    "wizard_from_snapshot",
    "ensure_can_finalize",
    "is_valid_name",
    "is_valid_institution",
    "infer_tipo_persona",
    "validate_estado_civil",
    "generate_system_prompt",
    "generate_user_prompt",
    "SupabaseKnowledgeStore",
    "build_knowledge_context",
    "infer_tags_from_missing",
    "build_preaviso_turn",
    "run_preaviso_turn",
]
