# endpoints/preaviso.py
# Estado del wizard, validación de cierre y armado del prompt del asistente de preaviso

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from preaviso_core import (
    SupabaseKnowledgeStore,
    build_preaviso_turn,
    compute_wizard_state,
    ensure_can_finalize,
)

logger = logging.getLogger(__name__)

router = APIRouter()


class ContextRequest(BaseModel):
    context: Dict[str, Any]


class PromptRequest(BaseModel):
    context: Dict[str, Any]
    messages: List[Dict[str, Any]] = Field(default_factory=list)


def get_knowledge_store():
    return SupabaseKnowledgeStore()


@router.post("/expedientes/preaviso/wizard-state")
def wizard_state(body: ContextRequest):
    wizard = compute_wizard_state(body.context)
    return wizard.model_dump()


@router.post("/expedientes/preaviso/finalize/validate")
def finalize_validate(body: ContextRequest):
    snapshot = ensure_can_finalize(body.context)
    return {"ok": True, "state": snapshot.to_dict()}


@router.post("/ai/preaviso/prompt")
def preaviso_prompt(body: PromptRequest, knowledge_store=Depends(get_knowledge_store)):
    turn = build_preaviso_turn(body.context, body.messages, knowledge_store=knowledge_store)
    return turn.model_dump()
