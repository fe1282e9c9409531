"""Unit tests for the input validators."""

import pytest
from services.rules.validator import (
    AuditRuleValidator,
    normalize_attendances,
    validate_aih,
    validate_glosa,
    validate_justification,
    validate_movement,
    validate_professionals,
)


class TestAuditRuleValidator:
    """Test field-level rules."""

    def test_validate_aih_number_valid(self):
        errors, warnings = AuditRuleValidator.validate_aih_number("1234567890123")
        assert errors == []
        assert warnings == []

    def test_validate_aih_number_not_thirteen_digits_warns(self):
        errors, warnings = AuditRuleValidator.validate_aih_number("AIH-42")
        assert errors == []
        assert len(warnings) == 1

    def test_validate_aih_number_required(self):
        errors, _ = AuditRuleValidator.validate_aih_number("   ")
        assert "required" in errors[0].lower()

    @pytest.mark.parametrize("valor", [0, -10, "abc", None, float("nan")])
    def test_validate_initial_value_rejects(self, valor):
        errors, _ = AuditRuleValidator.validate_initial_value(valor)
        assert len(errors) == 1

    def test_validate_initial_value_accepts_numeric_string(self):
        errors, _ = AuditRuleValidator.validate_initial_value("1500.50")
        assert errors == []

    @pytest.mark.parametrize("competencia", ["01/2024", "12/2025"])
    def test_validate_competence_valid(self, competencia):
        errors, _ = AuditRuleValidator.validate_competence(competencia)
        assert errors == []

    @pytest.mark.parametrize("competencia", ["13/2024", "00/2024", "1/2024", "2024/01", "01-2024"])
    def test_validate_competence_invalid(self, competencia):
        errors, _ = AuditRuleValidator.validate_competence(competencia)
        assert len(errors) == 1

    def test_validate_competence_optional(self):
        errors, _ = AuditRuleValidator.validate_competence(None, required=False)
        assert errors == []

    @pytest.mark.parametrize("status", [1, 2, 3, 4, "3"])
    def test_validate_status_valid(self, status):
        errors, _ = AuditRuleValidator.validate_status(status)
        assert errors == []

    @pytest.mark.parametrize("status", [0, 5, "x", None])
    def test_validate_status_invalid(self, status):
        errors, _ = AuditRuleValidator.validate_status(status)
        assert len(errors) == 1

    def test_validate_account_value_negative(self):
        errors, _ = AuditRuleValidator.validate_account_value(-1)
        assert len(errors) == 1

    def test_validate_account_value_blank_allowed(self):
        errors, _ = AuditRuleValidator.validate_account_value("")
        assert errors == []


class TestNormalizeAttendances:
    """Test attendance input normalization."""

    def test_list(self):
        assert normalize_attendances([" A1 ", "", None, "A2"]) == ["A1", "A2"]

    def test_separated_string(self):
        assert normalize_attendances("A1, A2\nA3\r\n,") == ["A1", "A2", "A3"]

    def test_mapping_values(self):
        assert normalize_attendances({"0": "A1", "1": "A2"}) == ["A1", "A2"]

    def test_drops_overlong_items(self):
        assert normalize_attendances(["A" * 51, "B" * 50]) == ["B" * 50]

    def test_unsupported_type(self):
        assert normalize_attendances(42) == []


class TestValidateAIH:
    """Test AIH registration validation."""

    def test_valid(self):
        result = validate_aih(
            {"numero_aih": "1234567890123", "valor_inicial": 1000, "competencia": "07/2025", "atendimentos": ["A1"]}
        )
        assert result.is_valid
        assert result.errors == []

    def test_reports_every_violation(self):
        result = validate_aih({"numero_aih": "", "valor_inicial": -1, "competencia": "7/2025", "atendimentos": []})
        assert not result.is_valid
        assert len(result.errors) == 4
        assert "At least one attendance required" in result.errors

    def test_too_many_attendances(self):
        result = validate_aih(
            {
                "numero_aih": "1234567890123",
                "valor_inicial": 1000,
                "competencia": "07/2025",
                "atendimentos": [f"A{i}" for i in range(101)],
            }
        )
        assert not result.is_valid
        assert "100" in result.errors[0]


class TestValidateMovement:
    """Test movement and professional rules."""

    def test_valid_movement(self):
        result = validate_movement({"tipo": "entrada_sus", "status_aih": 3, "valor_conta": 10, "competencia": "07/2025"})
        assert result.is_valid

    def test_invalid_movement(self):
        result = validate_movement({"tipo": "transfer", "status_aih": 9})
        assert len(result.errors) == 2

    def test_professionals_nursing_required(self):
        result = validate_professionals({"prof_medicina": "Dr. A"})
        assert result.errors == ["Nursing professional is required"]

    def test_professionals_maxillofacial_substitutes_medicine(self):
        result = validate_professionals({"prof_enfermagem": "Nurse B", "prof_bucomaxilo": "Dr. C"})
        assert result.is_valid

    def test_professionals_physiotherapy_does_not_substitute_medicine(self):
        result = validate_professionals({"prof_enfermagem": "Nurse B", "prof_fisioterapia": "Physio D"})
        assert not result.is_valid

    def test_professionals_nursing_and_medicine(self):
        assert validate_professionals({"prof_enfermagem": "Nurse B", "prof_medicina": "Dr. A"}).is_valid

    def test_professionals_both_missing(self):
        result = validate_professionals({"prof_fisioterapia": "Physio D"})
        assert len(result.errors) == 2


class TestOtherValidators:
    """Test justification and glosa rules."""

    @pytest.mark.parametrize("text", [None, "", "too short", "   short   "])
    def test_justification_too_short(self, text):
        assert not validate_justification(text).is_valid

    def test_justification_valid(self):
        assert validate_justification("Duplicate entry by mistake").is_valid

    def test_glosa_required_fields(self):
        result = validate_glosa({"linha": "", "quantidade": 0})
        assert result.errors == [
            "Line is required",
            "Type is required",
            "Professional is required",
            "Quantity must be at least 1",
        ]

    def test_glosa_quantity_defaults(self):
        result = validate_glosa({"linha": "12", "tipo": "Quantidade excedente", "profissional": "Dr. A"})
        assert result.is_valid
