import copy

import pytest

from preaviso_core.schema import READY_STATE, STAGES, derive_facts, field_label, field_template, normalize_estado_civil
from preaviso_core.state import STAGE_EVALUATORS, compute_preaviso_state
from utils.errors import ValidationError


class TestRequiredMissing:
    """Tests for missing-field detection and priority order."""

    def test_empty_context_lists_everything_in_stage_order(self):
        """Test an empty context reports every top-level gap in order."""
        state = compute_preaviso_state({})

        assert state.required_missing == [
            "inmueble.folio_real",
            "inmueble.seccion",
            "inmueble.partidas",
            "inmueble.direccion",
            "vendedores[]",
            "compradores[]",
            "creditos",
            "inmueble.existe_hipoteca",
        ]
        assert state.current_state == "collecting_property_data"
        assert state.state_status == "incomplete"
        assert state.allowed_actions == ["ASK_FOR_DATA"]
        assert state.priority_field == "inmueble.folio_real"
        assert state.stage_status["collecting_credit_data"] == "pending"

    def test_only_gravamen_institution_missing(self, complete_context):
        """Test the gravamen creditor surfaces as the single priority field."""
        ctx = copy.deepcopy(complete_context)
        del ctx["gravamenes"][0]["institucion"]

        state = compute_preaviso_state(ctx)

        assert state.required_missing == ["gravamenes[0].institucion"]
        assert state.priority_field == "gravamenes[0].institucion"
        assert state.current_state == "collecting_encumbrance_data"

    def test_complete_context(self, complete_context):
        """Test a complete context is ready to generate."""
        state = compute_preaviso_state(complete_context)

        assert state.required_missing == []
        assert state.blocking_reasons == []
        assert state.current_state == READY_STATE
        assert state.state_status == "complete"
        assert state.allowed_actions == ["NO_ACTION"]
        assert state.priority_field is None
        assert set(state.stage_status.values()) == {"completed"}

    def test_married_buyer_needs_spouse(self, complete_context):
        """Test estado_civil casado requires the spouse name."""
        ctx = copy.deepcopy(complete_context)
        ctx["compradores"][0]["persona_fisica"] = {"nombre": "Juan Perez Lopez", "estado_civil": "Casada"}

        state = compute_preaviso_state(ctx)

        assert state.required_missing == ["compradores[0].persona_fisica.conyuge.nombre"]

    def test_single_buyer_needs_no_spouse(self, complete_context):
        """Test soltero does not require a spouse."""
        ctx = copy.deepcopy(complete_context)
        ctx["compradores"][0]["persona_fisica"] = {"nombre": "Juan Perez Lopez", "estado_civil": "soltero"}
        assert compute_preaviso_state(ctx).required_missing == []

    def test_spouse_listed_as_buyer_needs_no_marital_status(self, complete_context):
        """Test a co-buyer who is the spouse is not asked for estado civil."""
        ctx = copy.deepcopy(complete_context)
        ctx["compradores"].append({"persona_fisica": {"nombre": "Ana Lopez Diaz"}})
        assert compute_preaviso_state(ctx).required_missing == []

    def test_persona_moral_needs_denominacion(self, complete_context):
        """Test the name path follows tipo_persona."""
        ctx = copy.deepcopy(complete_context)
        ctx["vendedores"] = [{"tipo_persona": "persona_moral", "persona_moral": {}}]

        assert compute_preaviso_state(ctx).required_missing == ["vendedores[0].persona_moral.denominacion_social"]

    def test_seller_credit_fields(self, complete_context):
        """Test seller credit data is required only when tiene_credito is true."""
        ctx = copy.deepcopy(complete_context)
        ctx["vendedores"][0]["tiene_credito"] = True

        state = compute_preaviso_state(ctx)

        assert state.required_missing == [
            "vendedores[0].credito_vendedor.institucion",
            "vendedores[0].credito_vendedor.numero_credito",
        ]
        assert state.actos_notariales.cancelacionCreditoVendedor is True

    def test_contado_skips_credit_stage(self, complete_context):
        """Test creditos == [] confirms cash payment."""
        ctx = copy.deepcopy(complete_context)
        ctx["creditos"] = []

        state = compute_preaviso_state(ctx)

        assert state.required_missing == []
        assert state.stage_status["collecting_credit_data"] == "not_applicable"
        assert state.actos_notariales.aperturaCreditoComprador is False

    def test_credit_fields(self, complete_context):
        """Test each credit needs institution and participants."""
        ctx = copy.deepcopy(complete_context)
        ctx["creditos"] = [{}]
        assert compute_preaviso_state(ctx).required_missing == [
            "creditos[0].institucion",
            "creditos[0].participantes[]",
        ]

    def test_mortgage_without_gravamenes(self, complete_context):
        """Test existe_hipoteca true needs the gravamen list."""
        ctx = copy.deepcopy(complete_context)
        ctx["gravamenes"] = []
        assert compute_preaviso_state(ctx).required_missing == ["gravamenes[]"]

    def test_no_mortgage(self, complete_context):
        """Test existe_hipoteca false closes the encumbrance stage."""
        ctx = copy.deepcopy(complete_context)
        ctx["inmueble"]["existe_hipoteca"] = False
        ctx["gravamenes"] = []

        state = compute_preaviso_state(ctx)

        assert state.state_status == "complete"
        assert state.stage_status["collecting_encumbrance_data"] == "not_applicable"
        assert state.actos_notariales.cancelacionHipoteca is False

    def test_registry_text_implies_mortgage(self, complete_context):
        """Test the inscription sheet can establish a mortgage."""
        ctx = copy.deepcopy(complete_context)
        del ctx["inmueble"]["existe_hipoteca"]
        ctx["gravamenes"] = []
        ctx["documentosProcesados"] = [
            {"tipo": "inscripcion", "informacionExtraida": {"gravamenes": "Hipoteca a favor de Banorte"}}
        ]
        assert compute_preaviso_state(ctx).required_missing == ["gravamenes[]"]

    def test_data_from_inscription_document(self, complete_context):
        """Test section and address can come from the inscription sheet."""
        ctx = copy.deepcopy(complete_context)
        del ctx["inmueble"]["seccion"]
        del ctx["inmueble"]["direccion"]
        ctx["documentosProcesados"] = [
            {"tipo": "inscripcion", "informacionExtraida": {"seccion": "Civil", "ubicacion": "Lote 5, Centro"}}
        ]
        assert compute_preaviso_state(ctx).required_missing == []

    @pytest.mark.parametrize("nombre", ["casado", "Juan casado", "Comprador", "Juan 12345"])
    def test_implausible_buyer_name_counts_as_missing(self, complete_context, nombre):
        """Test an answer captured as a name is still asked for."""
        ctx = copy.deepcopy(complete_context)
        ctx["compradores"][0]["persona_fisica"]["nombre"] = nombre
        assert compute_preaviso_state(ctx).required_missing == ["compradores[0].persona_fisica.nombre"]

    def test_implausible_seller_name_counts_as_missing(self, complete_context):
        """Test seller names go through the same check."""
        ctx = copy.deepcopy(complete_context)
        ctx["vendedores"][0]["persona_fisica"]["nombre"] = "vendedor"
        assert compute_preaviso_state(ctx).required_missing == ["vendedores[0].persona_fisica.nombre"]

    def test_short_denominacion_is_accepted(self, complete_context):
        """Test company names skip the person-name heuristic."""
        ctx = copy.deepcopy(complete_context)
        ctx["vendedores"] = [{"tipo_persona": "persona_moral", "persona_moral": {"denominacion_social": "ABC SA"}}]
        assert compute_preaviso_state(ctx).required_missing == []

    def test_unknown_marital_status_counts_as_missing(self, complete_context):
        """Test an estado civil outside the catalog is asked again."""
        ctx = copy.deepcopy(complete_context)
        ctx["compradores"][0]["persona_fisica"]["estado_civil"] = "complicado"
        assert compute_preaviso_state(ctx).required_missing == ["compradores[0].persona_fisica.estado_civil"]

    def test_tipo_persona_inferred_from_denominacion(self, complete_context):
        """Test a party captured both ways is a company when the name has a corporate form."""
        ctx = copy.deepcopy(complete_context)
        ctx["vendedores"] = [{
            "persona_fisica": {"nombre": "Maria Ruiz Soto"},
            "persona_moral": {"denominacion_social": "Inmobiliaria Norte SA de CV"},
        }]

        assert derive_facts(ctx).vendedores[0].tipo_persona == "persona_moral"
        assert compute_preaviso_state(ctx).required_missing == []

    def test_tipo_persona_stays_open_without_corporate_form(self, complete_context):
        """Test a party captured both ways without a corporate form still needs tipo_persona."""
        ctx = copy.deepcopy(complete_context)
        ctx["vendedores"] = [{
            "persona_fisica": {"nombre": "Maria Ruiz Soto"},
            "persona_moral": {"denominacion_social": "Maria Ruiz Soto"},
        }]
        assert compute_preaviso_state(ctx).required_missing == ["vendedores[0].tipo_persona"]


class TestBlockingReasons:
    """Tests for blocking reasons."""

    def test_multiple_folios(self):
        """Test several folio candidates without a confirmed choice."""
        ctx = {"folios": {"candidates": [{"folio": "1782486"}, {"folio": "1782487"}]}}

        state = compute_preaviso_state(ctx)

        assert "multiple_folio_real_detected" in state.blocking_reasons
        assert state.state_status == "blocked"
        assert state.allowed_actions == ["CLARIFY_CONFLICT"]
        assert state.stage_status["collecting_property_data"] == "blocked"

    def test_single_folio_needs_confirmation(self):
        """Test one detected folio still requires confirmation."""
        ctx = {"documentosProcesados": [{"tipo": "inscripcion", "informacionExtraida": {"folioReal": "1782486"}}]}
        assert "folio_real_confirmation_required" in compute_preaviso_state(ctx).blocking_reasons

    def test_confirmed_selection_resolves_folio(self, complete_context):
        """Test a confirmed selection among the candidates counts as folio real."""
        ctx = copy.deepcopy(complete_context)
        del ctx["inmueble"]["folio_real"]
        ctx["folios"] = {
            "candidates": [{"folio": "1782486"}, {"folio": "1782487"}],
            "selection": {"selected_folio": "1782487", "confirmed_by_user": True},
        }
        state = compute_preaviso_state(ctx)
        assert state.blocking_reasons == []
        assert state.required_missing == []

    def test_selection_outside_candidates_does_not_count(self):
        """Test a selection not among the candidates is ignored."""
        ctx = {"folios": {
            "candidates": ["1782486", "1782487"],
            "selection": {"selected_folio": "9999999", "confirmed_by_user": True},
        }}
        assert compute_preaviso_state(ctx).required_missing[0] == "inmueble.folio_real"

    def test_seller_titular_mismatch(self, complete_context):
        """Test seller must match the registry owner."""
        ctx = copy.deepcopy(complete_context)
        ctx["documentosProcesados"] = [
            {"tipo": "inscripcion", "informacionExtraida": {"propietario": {"nombre": "Pedro Gomez Ruiz"}}}
        ]
        assert compute_preaviso_state(ctx).blocking_reasons == ["vendedor_titular_mismatch"]

        ctx["vendedores"][0]["titular_registral_confirmado"] = True
        assert compute_preaviso_state(ctx).blocking_reasons == []

    def test_seller_matches_titular_ignoring_accents(self, complete_context):
        """Test name comparison ignores case and accents."""
        ctx = copy.deepcopy(complete_context)
        ctx["documentosProcesados"] = [
            {"tipo": "inscripcion", "informacionExtraida": {"propietario": {"nombre": "MARÍA RUIZ SOTO"}}}
        ]
        assert compute_preaviso_state(ctx).blocking_reasons == []

    def test_unsupported_operation(self, complete_context):
        """Test only compraventa is supported."""
        ctx = copy.deepcopy(complete_context)
        ctx["tipoOperacion"] = "permuta"
        assert compute_preaviso_state(ctx).blocking_reasons == ["tipo_operacion_no_soportada"]

    def test_generic_credit_institution(self, complete_context):
        """Test generic answers are not accepted as institution."""
        ctx = copy.deepcopy(complete_context)
        ctx["creditos"][0]["institucion"] = "banco"
        assert compute_preaviso_state(ctx).blocking_reasons == ["credito_institucion_invalida"]

    def test_contradictory_mortgage(self, complete_context):
        """Test existe_hipoteca false with captured gravamenes."""
        ctx = copy.deepcopy(complete_context)
        ctx["inmueble"]["existe_hipoteca"] = False

        state = compute_preaviso_state(ctx)

        assert state.blocking_reasons == ["hipoteca_contradictoria"]
        assert state.state_status == "blocked"

    def test_inconsistent_declared_acts(self, complete_context):
        """Test declared notarial acts must match the derived ones."""
        ctx = copy.deepcopy(complete_context)
        ctx["actosNotariales"] = {"cancelacionHipoteca": False}

        state = compute_preaviso_state(ctx)

        assert state.blocking_reasons == ["actos_notariales_inconsistentes"]
        assert state.current_state == "reviewing_notarial_acts"

    def test_multiple_partidas(self, complete_context):
        """Test several registry partidas need an explicit selection."""
        ctx = copy.deepcopy(complete_context)
        del ctx["inmueble"]["partidas"]
        ctx["documentosProcesados"] = [
            {"tipo": "inscripcion", "informacionExtraida": {"partidas": ["4521", "4522"]}}
        ]
        assert "multiple_partida_detected" in compute_preaviso_state(ctx).blocking_reasons

        ctx["inmueble"]["partidas"] = ["4522"]
        assert compute_preaviso_state(ctx).blocking_reasons == []


class TestActosNotariales:
    """Tests for derived notarial acts."""

    def test_acts_for_complete_context(self, complete_context):
        """Test credit and mortgage cancellation acts."""
        acts = compute_preaviso_state(complete_context).actos_notariales

        assert acts.compraventa is True
        assert acts.aperturaCreditoComprador is True
        assert acts.cancelacionHipoteca is True
        assert acts.cancelacionCreditoVendedor is False

    def test_unknown_acts(self):
        """Test acts stay undecided without information."""
        acts = compute_preaviso_state({}).actos_notariales
        assert acts.aperturaCreditoComprador is None
        assert acts.cancelacionHipoteca is None


class TestContract:
    """Tests for input validation and purity."""

    def test_does_not_mutate_context(self, complete_context):
        """Test the context is left untouched."""
        before = copy.deepcopy(complete_context)
        compute_preaviso_state(complete_context)
        assert complete_context == before

    def test_deterministic(self, scenario_context):
        """Test repeated calls give the same snapshot."""
        assert compute_preaviso_state(scenario_context) == compute_preaviso_state(scenario_context)

    @pytest.mark.parametrize("context,path", [
        ("texto", "context"),
        (None, "context"),
        ({"inmueble": "casa"}, "inmueble"),
        ({"compradores": {"nombre": "Juan"}}, "compradores"),
        ({"compradores": ["Juan"]}, "compradores[0]"),
        ({"vendedores": [{"tipo_persona": "fideicomiso"}]}, "vendedores[0].tipo_persona"),
        ({"creditos": "BBVA"}, "creditos"),
    ])
    def test_malformed_context_raises(self, context, path):
        """Test malformed contexts fail loudly naming the path."""
        with pytest.raises(ValidationError) as exc:
            compute_preaviso_state(context)
        assert exc.value.path == path

    def test_to_dict(self, scenario_context):
        """Test snapshot serialization."""
        data = compute_preaviso_state(scenario_context).to_dict()
        assert set(data) >= {"current_state", "state_status", "required_missing", "blocking_reasons"}


class TestSchemaHelpers:
    """Tests for schema helpers."""

    def test_stage_order(self):
        """Test the declared stage order."""
        assert [s.key for s in STAGES][:3] == [
            "collecting_property_data",
            "collecting_seller_data",
            "collecting_buyer_data",
        ]

    def test_field_label_for_indexed_path(self):
        """Test labels resolve indexed paths."""
        assert field_label("compradores[1].persona_fisica.conyuge.nombre") == "Nombre del cónyuge"

    @pytest.mark.parametrize("context_name", ["empty", "complete", "scenario", "broken"])
    def test_reported_paths_are_declared_in_their_stage(self, context_name, complete_context, scenario_context):
        """Test every path a stage reports missing has a declared field in that stage."""
        broken = copy.deepcopy(complete_context)
        broken["vendedores"] = [{"tipo_persona": "persona_fisica", "credito_vendedor": {}}]
        broken["vendedores"][0]["tiene_credito"] = True
        broken["compradores"].append({"persona_moral": {}})
        broken["creditos"] = [{}]
        broken["gravamenes"] = [{}]
        ctx = {"empty": {}, "complete": complete_context, "scenario": scenario_context, "broken": broken}[context_name]
        facts = derive_facts(ctx)

        for stage in STAGES:
            declared = {f.path for f in stage.fields}
            _, missing, _ = STAGE_EVALUATORS[stage.key](facts)
            for path in missing:
                assert field_template(path) in declared, (stage.key, path)

    @pytest.mark.parametrize("raw,expected", [
        ("Casada", "casado"),
        ("SOLTERO", "soltero"),
        ("viuda", "viudo"),
        ("divorciado(a)", "divorciado"),
        ("", None),
    ])
    def test_normalize_estado_civil(self, raw, expected):
        """Test marital status normalization."""
        assert normalize_estado_civil(raw) == expected
