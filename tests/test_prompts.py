import copy

import pytest

from preaviso_core.prompts import (
    build_detected_summary,
    generate_system_prompt,
    generate_user_prompt,
)
from preaviso_core.state import compute_preaviso_state
from utils.errors import ValidationError


class TestGenerateUserPrompt:
    """Tests for generate_user_prompt."""

    def test_priority_and_detected_summary(self, scenario_context):
        """Test detected data and the priority field appear in the prompt."""
        prompt = generate_user_prompt(
            scenario_context,
            [{"role": "user", "content": "hola"}],
            ["gravamenes[0].institucion"],
            True,
            False,
            [],
        )

        assert "Dato prioritario a resolver: gravamenes[0].institucion" in prompt
        assert "Folio real: 1782486" in prompt
        assert "Comprador: Juan Perez" in prompt
        assert "Institución de crédito: BBVA" in prompt
        assert "Vendedor: Maria Ruiz" in prompt
        assert "Cónyuge del comprador: Ana Lopez" in prompt
        assert "Forma de pago: Crédito" in prompt

    def test_deterministic(self, scenario_context):
        """Test identical input gives an identical string."""
        args = (scenario_context, [{"role": "user", "content": "hola"}], ["inmueble.seccion"])
        assert generate_user_prompt(*args) == generate_user_prompt(*copy.deepcopy(args))

    def test_absent_nested_data(self):
        """Test missing sub-objects degrade to placeholders."""
        prompt = generate_user_prompt({"compradores": [{}]}, [], [])

        assert "Folio real: No detectado" in prompt
        assert "Comprador: No detectado" in prompt
        assert "Cónyuge del comprador: No detectado" in prompt
        assert "Forma de pago: No confirmada" in prompt
        assert "Institución de crédito: No detectada" in prompt
        assert "Dato prioritario a resolver" not in prompt

    def test_contado(self):
        """Test an empty credit list reads as cash payment."""
        assert "Forma de pago: Contado" in generate_user_prompt({"creditos": []}, [], ["inmueble.seccion"])

    def test_selected_folio_wins(self):
        """Test the folio selection is shown before inmueble.folio_real."""
        ctx = {"inmueble": {"folio_real": "111"}, "folios": {"selection": {"selected_folio": "1782487"}}}
        assert "Folio real: 1782487" in generate_user_prompt(ctx, [], [])

    def test_greeting_instruction(self, scenario_context):
        """Test greeting turns ask to greet and then request the priority field."""
        prompt = generate_user_prompt(
            scenario_context, [{"role": "user", "content": "buenos días"}], ["inmueble.seccion"], is_greeting=True
        )
        assert "El usuario acaba de saludar (buenos días)" in prompt
        assert "dato faltante: inmueble.seccion" in prompt

    def test_last_message_without_greeting(self, scenario_context):
        """Test the last user message is quoted."""
        prompt = generate_user_prompt(scenario_context, [{"role": "user", "content": "el folio es 1782486"}], [])
        assert 'Último mensaje del usuario: "el folio es 1782486"' in prompt

    def test_history_limited_to_last_ten(self):
        """Test only the last ten messages are included."""
        history = [{"role": "user", "content": f"mensaje-{i:02d}"} for i in range(12)]

        prompt = generate_user_prompt({}, history, [])

        assert "mensaje-01" not in prompt
        assert "user: mensaje-02" in prompt
        assert "user: mensaje-11" in prompt

    def test_multiple_folios_notice(self):
        """Test folio candidates are listed when several were detected."""
        prompt = generate_user_prompt({}, [], [], has_multiple_folios=True,
                                      folio_candidates=["1782486", {"folio": "1782487"}])
        assert "Folios detectados: 1782486, 1782487" in prompt

    def test_context_is_embedded_as_sorted_json(self):
        """Test context JSON is key-sorted."""
        prompt = generate_user_prompt({"b": 1, "a": 2}, [], [])
        assert prompt.index('"a": 2') < prompt.index('"b": 1')

    @pytest.mark.parametrize("args", [
        ("contexto", [], []),
        ({}, "historial", []),
        ({}, [], "inmueble.seccion"),
        ({}, [], [1, 2]),
    ])
    def test_invalid_arguments(self, args):
        """Test wrong argument types fail loudly."""
        with pytest.raises(ValidationError):
            generate_user_prompt(*args)


class TestDetectedSummary:
    """Tests for build_detected_summary."""

    def test_inscription_flag(self):
        """Test processed inscription sheet is reported."""
        summary = build_detected_summary({"documentosProcesados": [{"tipo": "inscripcion"}]}, [])
        assert "Hoja de inscripción procesada: Sí" in summary

    def test_persona_moral_name(self):
        """Test company names are used for parties."""
        ctx = {"vendedores": [{"persona_moral": {"denominacion_social": "Inmobiliaria Norte SA de CV"}}]}
        assert "Vendedor: Inmobiliaria Norte SA de CV" in build_detected_summary(ctx, [])

    def test_priority_field_carries_its_label(self):
        """Test the priority path is followed by the human-readable field name."""
        summary = build_detected_summary({}, ["gravamenes[0].institucion", "inmueble.seccion"])
        assert "Dato prioritario a resolver: gravamenes[0].institucion (Acreedor del gravamen)" in summary

    def test_unknown_priority_path_has_no_label(self):
        """Test undeclared paths are printed as is."""
        summary = build_detected_summary({}, ["otro.dato"])
        assert summary.rstrip().endswith("Dato prioritario a resolver: otro.dato")


class TestGenerateSystemPrompt:
    """Tests for generate_system_prompt."""

    def test_fills_template(self, scenario_context):
        """Test the template is filled with diagnostic, missing list and knowledge."""
        snapshot = compute_preaviso_state(scenario_context)

        prompt, version = generate_system_prompt(
            snapshot,
            knowledge_context="KNOWLEDGE OFICIAL (fuente versionada):\n1. [tono] Sé amable.",
            document_snippets=[{"text": "Folio real 1782486, sección civil"}, "  "],
        )

        assert version == "v1"
        assert "Preaviso de Compraventa" in prompt
        assert "KNOWLEDGE OFICIAL (fuente versionada):" in prompt
        assert '- "Folio real 1782486, sección civil"' in prompt
        assert '"inmueble.seccion"' in prompt
        assert f"Estado actual: {snapshot.current_state}" in prompt
        assert "{" + "tramite_name}" not in prompt
        assert "{" + "knowledge_context}" not in prompt

    def test_blocking_reasons_in_diagnostic(self):
        """Test blocking reasons reach the diagnostic block."""
        snapshot = compute_preaviso_state({"tipoOperacion": "permuta"})
        prompt, _ = generate_system_prompt(snapshot)
        assert "BLOQUEOS: tipo_operacion_no_soportada" in prompt

    def test_invalid_snapshot(self):
        """Test a plain dict is not accepted as snapshot."""
        with pytest.raises(ValidationError):
            generate_system_prompt({"current_state": "x"})
