"""
Vista de pasos del wizard de preaviso (paso1..pasoN) a partir del estado calculado
"""
from typing import Any

from .models import PreavisoStateSnapshot, PreavisoWizardState, WizardStep
from .schema import STAGES
from .state import compute_preaviso_state

DONE_STATUSES = ("completed", "not_applicable")


def wizard_from_snapshot(snapshot: PreavisoStateSnapshot) -> PreavisoWizardState:
    steps = []
    for i, stage in enumerate(STAGES, start=1):
        stage_status = snapshot.stage_status.get(stage.key, "pending")
        if stage_status in DONE_STATUSES:
            status = "completed"
        elif stage.key == snapshot.current_state or stage_status == "blocked":
            status = "blocked"
        else:
            status = "pending"
        steps.append(WizardStep(id=f"paso{i}", state_id=stage.key, title=stage.title, status=status))

    total = len(steps)
    first_open = next((i for i, s in enumerate(steps) if s.status != "completed"), total)
    current_step = min(max(first_open + 1, 1), total)
    can_finalize = all(s.status == "completed" for s in steps) and not snapshot.blocking_reasons

    return PreavisoWizardState(
        current_step=current_step,
        total_steps=total,
        steps=steps,
        can_finalize=can_finalize,
        state=snapshot,
    )


def compute_wizard_state(context: Any) -> PreavisoWizardState:
    """Estado del wizard para el contexto (misma validación que compute_preaviso_state)."""
    return wizard_from_snapshot(compute_preaviso_state(context))
