import copy

import pytest

from preaviso_core.domain_rules import ensure_can_finalize
from utils.errors import DomainRuleViolationError, ValidationError


class TestEnsureCanFinalize:
    """Tests for the finalize rules."""

    def test_complete_context_passes(self, complete_context):
        """Test a complete preaviso can be finalized."""
        snapshot = ensure_can_finalize(complete_context)
        assert snapshot.state_status == "complete"

    def test_buyer_without_minimum_data(self, complete_context):
        """Test the buyer needs a name, CURP or RFC."""
        ctx = copy.deepcopy(complete_context)
        ctx["compradores"] = [{"persona_fisica": {"estado_civil": "soltero"}}]

        with pytest.raises(DomainRuleViolationError) as exc:
            ensure_can_finalize(ctx)
        assert exc.value.code == "COMPRADOR_SIN_DATOS_MINIMOS"

    def test_buyer_with_curp_only_reaches_state_rules(self, complete_context):
        """Test CURP satisfies the minimum buyer data rule."""
        ctx = copy.deepcopy(complete_context)
        ctx["compradores"] = [{"persona_fisica": {"curp": "PELJ800101HDFRPN09", "estado_civil": "soltero"}}]

        with pytest.raises(DomainRuleViolationError) as exc:
            ensure_can_finalize(ctx)
        assert exc.value.code == "PREAVISO_INCOMPLETO"
        assert exc.value.details["required_missing"] == ["compradores[0].persona_fisica.nombre"]

    def test_blocked(self, complete_context):
        """Test blocking reasons prevent finalizing."""
        ctx = copy.deepcopy(complete_context)
        ctx["tipoOperacion"] = "donacion"

        with pytest.raises(DomainRuleViolationError) as exc:
            ensure_can_finalize(ctx)
        assert exc.value.code == "PREAVISO_BLOQUEADO"
        assert exc.value.to_dict()["details"] == {"blocking_reasons": ["tipo_operacion_no_soportada"]}

    def test_incomplete(self, complete_context):
        """Test missing data prevents finalizing."""
        ctx = copy.deepcopy(complete_context)
        del ctx["inmueble"]["seccion"]

        with pytest.raises(DomainRuleViolationError) as exc:
            ensure_can_finalize(ctx)
        assert exc.value.code == "PREAVISO_INCOMPLETO"
        assert "inmueble.seccion" in exc.value.message

    def test_malformed_context(self):
        """Test malformed input is a validation error."""
        with pytest.raises(ValidationError):
            ensure_can_finalize([])
