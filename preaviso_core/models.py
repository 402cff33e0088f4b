"""
Modelos Pydantic del núcleo de preaviso (todos serializables a JSON)
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ActosNotariales(BaseModel):
    """Actos que integran la escritura, derivados del contexto (None = aún no se sabe)."""
    compraventa: bool = True
    aperturaCreditoComprador: Optional[bool] = None
    cancelacionHipoteca: Optional[bool] = None
    cancelacionCreditoVendedor: bool = False


class PreavisoStateSnapshot(BaseModel):
    current_state: str
    state_status: str  # complete | incomplete | blocked
    required_missing: List[str] = Field(default_factory=list)
    blocking_reasons: List[str] = Field(default_factory=list)
    stage_status: Dict[str, str] = Field(default_factory=dict)
    allowed_actions: List[str] = Field(default_factory=list)
    actos_notariales: ActosNotariales = Field(default_factory=ActosNotariales)

    @property
    def priority_field(self) -> Optional[str]:
        return self.required_missing[0] if self.required_missing else None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()


class WizardStep(BaseModel):
    id: str
    state_id: str
    title: str
    status: str  # completed | pending | blocked


class PreavisoWizardState(BaseModel):
    current_step: int
    total_steps: int
    steps: List[WizardStep]
    can_finalize: bool
    state: PreavisoStateSnapshot


class KnowledgeChunk(BaseModel):
    id: str
    chunk_key: str
    title: str = ""
    content: str
    tags: List[str] = Field(default_factory=list)
    priority: int = 100
    always_include: bool = False
    version: str = "1"
    content_hash: Optional[str] = None


class KnowledgeSnapshot(BaseModel):
    tramite: str
    scope: str
    prompt_version: str
    knowledge_version: str
    knowledge_hash: str
    knowledge_chunk_ids: List[str]
    knowledge_chunk_keys: List[str]
    selection_reason: str
    selected_at: str


class KnowledgeContext(BaseModel):
    prompt_context: str
    snapshot: KnowledgeSnapshot


class ChatMessage(BaseModel):
    role: str
    content: str


class PreavisoTurn(BaseModel):
    """Todo lo necesario para pedir el siguiente turno al LLM, más la auditoría."""
    messages: List[Dict[str, str]]
    state: PreavisoStateSnapshot
    knowledge: KnowledgeSnapshot
    prompt_version: str
    reply: Optional[str] = None
